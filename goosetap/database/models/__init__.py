"""
Database Models Package
========================

SQLAlchemy ORM models for the Goose Tap ledger. Importing this package
registers every table on `Base.metadata`.
"""

from goosetap.core.database.base import Base
from goosetap.database.models.player import Player

__all__ = ["Base", "Player"]
