"""DataBank persistence: declarative base, models and session factory."""
