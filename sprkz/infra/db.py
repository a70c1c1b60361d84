"""
Unified database infrastructure module.

Single entry point for database access across the application. All models
import ``db`` from here.
"""

from sprkz.database import db, build_session_factory

__all__ = ["db", "build_session_factory"]
