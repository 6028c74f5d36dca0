from .backends import Backend, EmbeddedBackend, NetworkedBackend, select_backend
from .config import DbConfig, load_config
from .database import GENERATOR_TABLE, USER_TABLE, DatabaseManager, PreparedStatement, StatementResult
from .errors import ConnectivityError, DatabaseFileError, NextGensDatabaseError, PoolClosedError, PoolTimeoutError
from .models import ActiveGenerator, Location
from .pool import ConnectionPool, PoolSettings, PoolStats

__all__ = [
    "Backend",
    "EmbeddedBackend",
    "NetworkedBackend",
    "select_backend",
    "DbConfig",
    "load_config",
    "GENERATOR_TABLE",
    "USER_TABLE",
    "DatabaseManager",
    "PreparedStatement",
    "StatementResult",
    "ConnectivityError",
    "DatabaseFileError",
    "NextGensDatabaseError",
    "PoolClosedError",
    "PoolTimeoutError",
    "ActiveGenerator",
    "Location",
    "ConnectionPool",
    "PoolSettings",
    "PoolStats",
]
