"""TripLedger — expense split and settlement engine for trip planning."""
