#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixin for the auth session models.

- integer primary key assigned by the database
- created_at stamped in naive UTC on the Python side so SQLite and
  PostgreSQL compare timestamps the same way
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer
from sqlalchemy.orm import declarative_base

# Declarative base for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel:
    """
    Base mixin for all persistent models: id, created_at.
    """

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __init__(self, *args, **kwargs):
        """Allow attribute initialization via kwargs without requiring a session."""
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)
