"""Adapters for integrating AttriMet with storage and frameworks."""

from .memory import InMemoryAttributionRepository
from .sqlalchemy_repo import SQLAlchemyAttributionRepository

__all__ = ["InMemoryAttributionRepository", "SQLAlchemyAttributionRepository"]
