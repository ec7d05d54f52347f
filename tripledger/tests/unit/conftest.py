"""
Unit-test configuration.

Importing every model module registers all mapped classes up front, so
string relationships ("Trip", "ExpenseParticipant", ...) resolve as soon as
a test builds a select() against a model. No engine, no app context.
"""

from tripledger.app.models import (  # noqa: F401
    expense,
    expense_participant,
    settlement,
    trip,
    trip_member,
    user,
)
