"""
Core application utilities for settings, errors, logging and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- The domain error taxonomy shared by services and the API layer
- Dependency helpers (DB session, current actor, role checks, cron secret)
"""
