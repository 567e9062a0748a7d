"""Persistence layer: repository protocol with in-memory and async SQLAlchemy backends."""

from bacmap.db.connection import close_db, create_engine, init_db, make_session_factory
from bacmap.db.memory import InMemoryRepository
from bacmap.db.models import (
    AssignmentModel,
    Base,
    EquipmentModel,
    SignatureAnalyticsModel,
    SignatureModel,
)
from bacmap.db.repository import Repository
from bacmap.db.sql import SqlRepository

__all__ = [
    "AssignmentModel",
    "Base",
    "EquipmentModel",
    "InMemoryRepository",
    "Repository",
    "SignatureAnalyticsModel",
    "SignatureModel",
    "SqlRepository",
    "close_db",
    "create_engine",
    "init_db",
    "make_session_factory",
]
