"""HTTP API for the mastery engine."""
