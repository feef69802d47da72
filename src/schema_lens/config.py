"""
Connection configuration for schema_lens.

Connections are described in a YAML file:

    connections:
      - id: shop
        name: Shop (prod replica)
        type: mysql
        host: db.internal
        user: reader
        password_env: SHOP_DB_PASSWORD
        database: shop
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from schema_lens.errors import ConfigError
from schema_lens.models import DatabaseType

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {
    DatabaseType.MYSQL: 3306,
    DatabaseType.SQLSERVER: 1433,
}

DEFAULT_CACHE_DIR = Path("data") / "schema-cache"
CACHE_DIR_ENV = "SCHEMA_LENS_CACHE_DIR"


@dataclass
class ConnectionConfig:
    """Everything needed to reach one database."""
    id: str
    type: DatabaseType
    host: str
    database: str
    user: str = ""
    password: str = ""
    name: Optional[str] = None
    port: Optional[int] = None
    ssl: bool = False
    query_timeout: int = 60  # seconds
    driver: str = "ODBC Driver 18 for SQL Server"
    deep_dependencies: bool = True
    max_workers: int = 4
    fetch_attempts: int = 3  # per catalog sub-fetch
    fetch_retry_delay: float = 0.5  # seconds, doubled after each failed attempt
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def __post_init__(self):
        if isinstance(self.type, str):
            try:
                self.type = DatabaseType(self.type.lower())
            except ValueError:
                raise ConfigError(
                    f"Unknown database type '{self.type}' for connection '{self.id}'"
                ) from None
        if self.port is None:
            self.port = DEFAULT_PORTS[self.type]
        if self.name is None:
            self.name = self.id
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1 for connection '{self.id}'")
        if self.fetch_attempts < 1:
            raise ConfigError(f"fetch_attempts must be >= 1 for connection '{self.id}'")

    def to_dict(self, include_password: bool = False) -> Dict[str, Any]:
        """Convert to dictionary; the password is left out unless asked for."""
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "database": self.database,
            "ssl": self.ssl,
            "query_timeout": self.query_timeout,
            "driver": self.driver,
            "deep_dependencies": self.deep_dependencies,
            "max_workers": self.max_workers,
            "fetch_attempts": self.fetch_attempts,
            "fetch_retry_delay": self.fetch_retry_delay,
            "created_at": self.created_at,
        }
        if include_password:
            data["password"] = self.password
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ConnectionConfig:
        """Create from dictionary, resolving ``password_env``."""
        missing = [k for k in ("id", "type", "host", "database") if not data.get(k)]
        if missing:
            raise ConfigError(
                f"Connection entry is missing required keys: {', '.join(missing)}"
            )

        password = data.get("password", "")
        password_env = data.get("password_env")
        if password_env:
            if password_env not in os.environ:
                raise ConfigError(
                    f"Environment variable '{password_env}' for connection "
                    f"'{data['id']}' is not set"
                )
            password = os.environ[password_env]

        kwargs = {
            key: data[key]
            for key in (
                "name", "port", "ssl", "query_timeout", "driver",
                "deep_dependencies", "max_workers", "fetch_attempts",
                "fetch_retry_delay", "created_at",
            )
            if key in data
        }
        return cls(
            id=str(data["id"]),
            type=data["type"],
            host=data["host"],
            database=data["database"],
            user=data.get("user", ""),
            password=password,
            **kwargs,
        )


def load_connections(path: Path) -> Dict[str, ConnectionConfig]:
    """
    Load connection definitions from a YAML file.

    Args:
        path: Path to the connections YAML file

    Returns:
        Dict of connection id -> ConnectionConfig
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Connections file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    entries = data.get("connections", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ConfigError(f"'connections' in {path} must be a list")

    connections: Dict[str, ConnectionConfig] = {}
    for entry in entries:
        conn = ConnectionConfig.from_dict(entry)
        if conn.id in connections:
            raise ConfigError(f"Duplicate connection id '{conn.id}' in {path}")
        connections[conn.id] = conn

    logger.info(f"Loaded {len(connections)} connections from {path}")
    return connections


def get_connection(connections: Dict[str, ConnectionConfig], conn_id: str) -> ConnectionConfig:
    """Look up a connection by id."""
    try:
        return connections[conn_id]
    except KeyError:
        raise ConfigError(f"Connection not found: {conn_id}") from None


def default_cache_dir() -> Path:
    """Cache directory, honouring the SCHEMA_LENS_CACHE_DIR override."""
    override = os.environ.get(CACHE_DIR_ENV)
    return Path(override) if override else DEFAULT_CACHE_DIR
