"""
extensions.py — Flask extension singletons.

SQLAlchemy and marshmallow live here as module-level objects so models,
services and the app factory can import them without circular imports.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside create_app() in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

Never pass the app to SQLAlchemy() or Marshmallow() at import time; the test
suite builds its own app instance per session.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Validation schemas in app/schemas/ inherit from marshmallow.Schema, NOT
# ma.Schema: ma.Schema needs an application context and the unit tests load
# schemas without one.
ma = Marshmallow()
