# -*- coding: utf-8 -*-
"""
Database extension and session helpers.

The Flask-SQLAlchemy ``db`` object owns the engine and the request-scoped
session used by the admin routes. Background automation runs do not share that
session; they open their own through :func:`build_session_factory`.
"""

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import sessionmaker

db = SQLAlchemy()


def build_session_factory() -> sessionmaker:
    """Return a sessionmaker bound to the app's engine (requires app context)."""
    return sessionmaker(bind=db.engine, expire_on_commit=False)


__all__ = ["db", "build_session_factory"]
