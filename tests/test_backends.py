"""Backend selection, networked connect arguments and the fatal embedded path."""

from __future__ import annotations

import mysql.connector
import pytest

from nextgens.backends import EmbeddedBackend, NetworkedBackend, select_backend
from nextgens.config import DbConfig
from nextgens.database import DatabaseManager
from nextgens.errors import DatabaseFileError
from nextgens.pool import PoolSettings

from . import LogSink, make_generator


class FakeMySQLCursor:
    def __init__(self, connection: FakeMySQLConnection, prepared: bool) -> None:
        self.connection = connection
        self.prepared = prepared
        self.rowcount = 0

    def execute(self, statement, params=()):
        self.connection.executed.append((statement, tuple(params), self.prepared))
        self.rowcount = 1

    def fetchall(self):
        return [(1,)]

    def close(self) -> None:
        pass


class FakeMySQLConnection:
    def __init__(self, kwargs: dict) -> None:
        self.kwargs = kwargs
        self.executed: list[tuple] = []
        self.commits = 0
        self.closed = False
        self.in_transaction = False

    def cursor(self, prepared: bool = False) -> FakeMySQLCursor:
        return FakeMySQLCursor(self, prepared)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_mysql(monkeypatch):
    connections: list[FakeMySQLConnection] = []

    def connect(**kwargs):
        conn = FakeMySQLConnection(kwargs)
        connections.append(conn)
        return conn

    monkeypatch.setattr(mysql.connector, "connect", connect)
    return connections


def _mysql_config(**overrides) -> DbConfig:
    values = {
        "mysql_enabled": True,
        "host": "db.example.net",
        "port": 3307,
        "database": "gens",
        "user": "plugin",
        "password": "hunter2",
        "use_ssl": True,
    }
    values.update(overrides)
    return DbConfig(**values)


def test_select_backend_follows_mysql_flag(tmp_path) -> None:
    embedded = select_backend(DbConfig(data_folder=str(tmp_path)))
    networked = select_backend(_mysql_config())

    assert isinstance(embedded, EmbeddedBackend)
    assert embedded.path == tmp_path / "plugins" / "NextGens" / "generators.db"
    assert isinstance(networked, NetworkedBackend)


def test_networked_url_reflects_ssl_flag() -> None:
    assert NetworkedBackend(_mysql_config()).url() == "mysql://db.example.net:3307/gens?useSSL=true"
    assert NetworkedBackend(_mysql_config(use_ssl=False)).url() == "mysql://db.example.net:3307/gens?useSSL=false"


def test_networked_pool_opens_minimum_idle_connections(fake_mysql) -> None:
    log = LogSink()
    manager = DatabaseManager(_mysql_config(), log_fn=log).connect()

    assert manager.backend.kind == "mysql"
    assert len(fake_mysql) == 5
    kwargs = fake_mysql[0].kwargs
    assert kwargs["host"] == "db.example.net"
    assert kwargs["port"] == 3307
    assert kwargs["database"] == "gens"
    assert kwargs["user"] == "plugin"
    assert kwargs["password"] == "hunter2"
    assert kwargs["ssl_disabled"] is False
    assert kwargs["charset"] == "utf8mb4"
    assert kwargs["connection_timeout"] == 60

    settings = manager.pool.settings
    assert settings.minimum_idle == 5
    assert settings.maximum_pool_size == 50
    assert settings.pool_name == "NextGens Database Pool"
    assert settings.idle_timeout == 600
    assert settings.leak_detection_threshold == 180

    assert log.matching("Successfully established connection with mysql database!")
    assert not log.matching("hunter2")
    manager.close()
    assert all(conn.closed for conn in fake_mysql)


def test_networked_statements_use_prepared_cursor(fake_mysql) -> None:
    manager = DatabaseManager(_mysql_config(), log_fn=LogSink()).connect()
    manager.create_generator_table()
    active = make_generator()

    assert manager.save_generator(active).ok

    executed = [entry for conn in fake_mysql for entry in conn.executed]
    ddl = [entry for entry in executed if entry[0].startswith("CREATE TABLE")]
    assert "location VARCHAR(255) UNIQUE" in ddl[0][0]
    upserts = [entry for entry in executed if entry[0].startswith("REPLACE INTO")]
    assert upserts == [(upserts[0][0], active.to_row(), True)]
    manager.close()


def test_networked_connect_failure_propagates(monkeypatch) -> None:
    def refuse(**_kwargs):
        raise mysql.connector.errors.InterfaceError(msg="Can't connect to MySQL server")

    monkeypatch.setattr(mysql.connector, "connect", refuse)
    log = LogSink()
    manager = DatabaseManager(_mysql_config(), log_fn=log)

    with pytest.raises(mysql.connector.Error):
        manager.connect()

    assert manager.pool is None
    assert log.matching("[ERR] Could not connect to the mysql database")


def test_embedded_pool_has_capacity_one(tmp_path) -> None:
    backend = EmbeddedBackend(tmp_path / "gens.db")
    pool = backend.open_pool(PoolSettings(connection_timeout=0.05), LogSink())

    assert pool.settings.maximum_pool_size == 1
    assert (tmp_path / "gens.db").exists()
    pool.close()


def test_embedded_file_failure_is_fatal(tmp_path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied", encoding="utf-8")
    log = LogSink()
    halted: list[BaseException] = []
    manager = DatabaseManager(DbConfig(data_folder=str(blocker)), log_fn=log, on_fatal=halted.append)

    with pytest.raises(DatabaseFileError) as excinfo:
        manager.connect()

    assert halted == [excinfo.value]
    assert isinstance(excinfo.value.cause, OSError)
    assert log.matching("[FATAL] Failed to create the database file, stopping the server!")
    assert manager.pool is None


def test_embedded_ddl_keeps_text_location() -> None:
    ddl = EmbeddedBackend("unused.db").generator_table_ddl("nextgens_generator")

    assert ddl == (
        "CREATE TABLE IF NOT EXISTS nextgens_generator ("
        "owner VARCHAR(255), location TEXT UNIQUE, generator_id TEXT, "
        "timer DECIMAL(18,2), is_corrupted INT);"
    )
