from dataclasses import replace
from pathlib import Path
import sqlite3

import mysql.connector

from .config import DbConfig
from .errors import DatabaseFileError
from .logs import LogFn
from .pool import ConnectionPool, PoolSettings


class Backend:
    """Common surface of the storage engines a DatabaseManager can run on."""

    kind = "base"
    driver_errors: tuple = ()

    def open_pool(self, settings: PoolSettings, log_fn: LogFn) -> ConnectionPool:
        raise NotImplementedError

    def cursor(self, connection):
        return connection.cursor()

    def describe(self) -> str:
        return self.kind

    def location_column(self) -> str:
        return "TEXT"

    def generator_table_ddl(self, table: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {table} ("
            "owner VARCHAR(255), "
            f"location {self.location_column()} UNIQUE, "
            "generator_id TEXT, "
            "timer DECIMAL(18,2), "
            "is_corrupted INT"
            ");"
        )

    def user_table_ddl(self, table: str) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {table} ("
            "uuid VARCHAR(255) UNIQUE, "
            "bonus INT"
            ");"
        )


class EmbeddedBackend(Backend):
    kind = "sqlite"
    driver_errors = (sqlite3.Error,)

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.encoding = "UTF-8"

    def describe(self) -> str:
        return f"SQLite ({self.path})"

    def ensure_file(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                self.path.touch()
        except OSError as exc:
            raise DatabaseFileError(self.path, exc) from exc

    def _connect(self):
        # Pooled connections may be borrowed from any thread; the pool serializes access.
        conn = sqlite3.connect(str(self.path), timeout=30.0, check_same_thread=False)
        conn.execute(f"PRAGMA encoding = '{self.encoding}';")
        return conn

    def open_pool(self, settings: PoolSettings, log_fn: LogFn) -> ConnectionPool:
        self.ensure_file()
        settings = replace(settings, minimum_idle=0, maximum_pool_size=1)
        self.encoding = "UTF-8" if _is_utf8(settings.encoding) else settings.encoding
        return ConnectionPool(self._connect, settings, log_fn, driver_errors=self.driver_errors).open()


class NetworkedBackend(Backend):
    kind = "mysql"
    driver_errors = (mysql.connector.Error,)
    minimum_idle = 5
    maximum_pool_size = 50

    def __init__(self, config: DbConfig):
        self.config = config
        self.connection_timeout = 60
        self.charset = "utf8mb4"

    def url(self) -> str:
        cfg = self.config
        return f"mysql://{cfg.host}:{cfg.port}/{cfg.database}?useSSL={str(bool(cfg.use_ssl)).lower()}"

    def describe(self) -> str:
        return f"MySQL ({self.url()})"

    def location_column(self) -> str:
        # MySQL cannot put a UNIQUE key on an unbounded TEXT column.
        return "VARCHAR(255)"

    def connect_kwargs(self) -> dict:
        cfg = self.config
        return {
            "host": cfg.host,
            "port": int(cfg.port),
            "user": cfg.user,
            "password": cfg.password,
            "database": cfg.database,
            "charset": self.charset,
            "use_unicode": True,
            "autocommit": False,
            "connection_timeout": int(self.connection_timeout),
            "ssl_disabled": not cfg.use_ssl,
        }

    def _connect(self):
        return mysql.connector.connect(**self.connect_kwargs())

    def cursor(self, connection):
        return connection.cursor(prepared=True)

    def open_pool(self, settings: PoolSettings, log_fn: LogFn) -> ConnectionPool:
        settings = replace(
            settings,
            minimum_idle=self.minimum_idle,
            maximum_pool_size=self.maximum_pool_size,
        )
        self.connection_timeout = settings.connection_timeout
        self.charset = "utf8mb4" if _is_utf8(settings.encoding) else settings.encoding
        return ConnectionPool(self._connect, settings, log_fn, driver_errors=self.driver_errors).open()


def select_backend(config: DbConfig) -> Backend:
    if config.mysql_enabled:
        return NetworkedBackend(config)
    return EmbeddedBackend(config.sqlite_path())


def _is_utf8(encoding: str) -> bool:
    return encoding.replace("-", "").lower() in {"utf8", "utf8mb4"}
