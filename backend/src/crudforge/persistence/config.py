"""Database configuration and engine factory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crudforge.metadata.loader import MetadataLoader
    from crudforge.persistence.sqlalchemy_engine import SQLAlchemyEngine


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:/// and postgresql:// URL schemes.
    """

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order:
        1. DATABASE_URL env var
        2. CRUDFORGE_DB_PATH env var (converted to a sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/crudforge.db
        """
        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)

        db_path = os.environ.get("CRUDFORGE_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}")

        if base_path:
            return cls(url=f"sqlite:///{base_path / 'data' / 'crudforge.db'}")

        return cls(url="sqlite:///crudforge.db")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def sqlalchemy_url(self) -> str:
        """URL suitable for SQLAlchemy engine creation.

        postgresql:// URLs are pointed at the psycopg (v3) driver.
        """
        if self.url.startswith("postgresql://"):
            return self.url.replace("postgresql://", "postgresql+psycopg://", 1)
        return self.url


def create_engine_for(
    config: DatabaseConfig,
    loader: MetadataLoader,
    password_service=None,
    user_model: str = "User",
) -> SQLAlchemyEngine:
    """Create a data engine for the configured URL.

    Args:
        config: Database configuration with URL.
        loader: Resolved model metadata the engine builds its tables from.
        password_service: Hashes ``password`` values written through the
            user model.
        user_model: Name of the model holding credentials.

    Raises:
        ValueError: For unsupported URL schemes.
    """
    if not (config.is_sqlite or config.is_postgresql):
        raise ValueError(f"Unsupported database URL scheme: {config.url}")

    from crudforge.persistence.sqlalchemy_engine import SQLAlchemyEngine

    if config.is_sqlite and config.url not in ("sqlite://", "sqlite:///:memory:"):
        Path(config.url.replace("sqlite:///", "")).parent.mkdir(
            parents=True, exist_ok=True
        )
    return SQLAlchemyEngine(
        config.sqlalchemy_url,
        loader,
        password_service=password_service,
        user_model=user_model,
    )
