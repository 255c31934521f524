"""
POS Simulator Database Session Management

Declarative base shared by the ledger models. Engines and session factories
are created per run (see simulator/runner.py) so that each worker process owns
its own connection pool.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""

    pass
