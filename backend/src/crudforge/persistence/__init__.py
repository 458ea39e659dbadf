"""Persistence layer - data engine and database configuration."""

from crudforge.persistence.adapter import DataEngine
from crudforge.persistence.config import DatabaseConfig, create_engine_for

__all__ = ["DataEngine", "DatabaseConfig", "create_engine_for"]
