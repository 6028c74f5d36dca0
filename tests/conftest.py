from __future__ import annotations

import pytest

from nextgens.config import DbConfig
from nextgens.database import DatabaseManager

from . import LogSink


@pytest.fixture
def log_sink() -> LogSink:
    return LogSink()


@pytest.fixture
def db(tmp_path, log_sink):
    manager = DatabaseManager(DbConfig(data_folder=str(tmp_path)), log_fn=log_sink)
    manager.connect()
    manager.create_generator_table()
    manager.create_user_table()
    yield manager
    manager.close()
