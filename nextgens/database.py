from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from .backends import Backend, select_backend
from .config import DbConfig
from .errors import ConnectivityError, DatabaseFileError, PoolClosedError
from .logs import LogFn, default_log
from .models import ActiveGenerator, Location
from .pool import ConnectionPool, PoolSettings, PoolStats

GENERATOR_TABLE = "nextgens_generator"
USER_TABLE = "nextgens_user"
GENERATOR_COLUMNS = "owner, location, generator_id, timer, is_corrupted"

SAVE_GENERATOR_SQL = f"REPLACE INTO {GENERATOR_TABLE} VALUES (?,?,?,?,?);"
DELETE_GENERATOR_SQL = f"DELETE FROM {GENERATOR_TABLE} WHERE location=?;"

FailureHandler = Callable[[BaseException], None]


@dataclass
class StatementResult:
    ok: bool
    value: Any = None
    error: BaseException | None = None


class PreparedStatement:
    """A statement bound to one pooled connection, executed at most by its owner callback.

    Parameters are 1-indexed like ``set(1, value)``; ``bind`` replaces them all at once.
    """

    def __init__(self, connection, cursor, statement: str):
        self.connection = connection
        self.cursor = cursor
        self.statement = statement
        self._params: dict[int, Any] = {}

    def set(self, index: int, value):
        if index < 1:
            raise IndexError(f"Parameter index out of range: {index}")
        self._params[index] = value
        return self

    def bind(self, *values):
        self._params = {i: v for i, v in enumerate(values, start=1)}
        return self

    @property
    def params(self) -> tuple:
        return tuple(self._params[i] for i in sorted(self._params))

    def execute(self):
        self.cursor.execute(self.statement, self.params)
        return self.cursor

    def execute_update(self) -> int:
        self.execute()
        self.connection.commit()
        return int(self.cursor.rowcount or 0)

    def execute_query(self) -> list:
        return list(self.execute().fetchall() or [])

    def close(self):
        self.cursor.close()


class DatabaseManager:
    def __init__(
        self,
        config: DbConfig,
        log_fn: LogFn | None = None,
        on_fatal: Callable[[BaseException], None] | None = None,
        pool_settings: PoolSettings | None = None,
    ):
        self.config = config
        self.log = log_fn or default_log
        self.on_fatal = on_fatal
        self.pool_settings = pool_settings or PoolSettings()
        self.backend: Backend | None = None
        self.pool: ConnectionPool | None = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def connect(self):
        if self.pool is not None and self.pool.is_open:
            self.log("[DB] Closing previous database pool.")
            self.pool.close()
        backend = select_backend(self.config)
        self.log(f"[DB] Trying to connect to the {backend.describe()} database...")
        try:
            pool = backend.open_pool(self.pool_settings, self.log)
        except DatabaseFileError as exc:
            self.log("[FATAL] Failed to create the database file, stopping the server!")
            if self.on_fatal:
                self.on_fatal(exc)
            raise
        except backend.driver_errors as exc:
            self.log(f"[ERR] Could not connect to the {backend.kind} database: {exc}")
            raise
        self.backend = backend
        self.pool = pool
        self.log(f"[DB] Successfully established connection with {backend.kind} database!")
        return self

    def close(self):
        if self.pool is None:
            return
        self.pool.close()
        self.log("[DB] Database pool closed.")

    @contextmanager
    def get_connection(self):
        if self.pool is None:
            raise PoolClosedError(self.pool_settings.pool_name)
        with self.pool.connection() as conn:
            yield conn

    def pool_stats(self) -> PoolStats | None:
        return self.pool.stats() if self.pool else None

    def _handled_errors(self) -> tuple:
        driver_errors = self.backend.driver_errors if self.backend else ()
        return (ConnectivityError,) + tuple(driver_errors)

    def _default_failure(self, what: str, statement: str) -> FailureHandler:
        def handler(error: BaseException):
            self.log(f"[ERR] An error occurred while {what}: {statement}")
            self.log(f"[ERR] {type(error).__name__}: {error}")

        return handler

    def _run(self, statement: str, action, on_failure: FailureHandler | None, what: str) -> StatementResult:
        try:
            with self.get_connection() as conn:
                prepared = PreparedStatement(conn, self.backend.cursor(conn), statement)
                try:
                    value = action(prepared)
                finally:
                    prepared.close()
        except self._handled_errors() as exc:
            (on_failure or self._default_failure(what, statement))(exc)
            return StatementResult(False, error=exc)
        return StatementResult(True, value)

    def execute_update(self, statement: str, on_failure: FailureHandler | None = None, params: Iterable = ()) -> StatementResult:
        params = tuple(params)
        return self._run(
            statement,
            lambda prepared: prepared.bind(*params).execute_update(),
            on_failure,
            "running statement",
        )

    def execute_query(
        self,
        statement: str,
        on_result: Callable[[Any], Any],
        on_failure: FailureHandler | None = None,
        params: Iterable = (),
    ) -> StatementResult:
        params = tuple(params)
        return self._run(
            statement,
            lambda prepared: on_result(prepared.bind(*params).execute()),
            on_failure,
            "running query",
        )

    def build_statement(
        self,
        statement: str,
        on_statement: Callable[[PreparedStatement], Any],
        on_failure: FailureHandler | None = None,
    ) -> StatementResult:
        return self._run(statement, on_statement, on_failure, "building statement")

    # Schema

    def create_generator_table(self) -> StatementResult:
        return self.execute_update(self._require_backend().generator_table_ddl(GENERATOR_TABLE))

    def create_user_table(self) -> StatementResult:
        return self.execute_update(self._require_backend().user_table_ddl(USER_TABLE))

    def ensure_schema(self) -> bool:
        generators = self.create_generator_table()
        users = self.create_user_table()
        return generators.ok and users.ok

    def _require_backend(self) -> Backend:
        if self.backend is None:
            return select_backend(self.config)
        return self.backend

    # Generators

    def save_generator(self, active: ActiveGenerator, on_failure: FailureHandler | None = None) -> StatementResult:
        # A location without its world cannot be restored later.
        if not active.location.has_world():
            return StatementResult(True, 0)
        row = active.to_row()
        return self.build_statement(
            SAVE_GENERATOR_SQL,
            lambda prepared: prepared.bind(*row).execute_update(),
            on_failure,
        )

    def save_generators(self, actives: Iterable[ActiveGenerator], on_failure: FailureHandler | None = None) -> StatementResult:
        """Upsert many generators over a single pooled connection.

        Each row commits on its own. The first failure aborts the rest of the
        batch; rows written before it stay written.
        """
        saved = 0
        try:
            with self.get_connection() as conn:
                for active in actives:
                    if not active.location.has_world():
                        continue
                    prepared = PreparedStatement(conn, self.backend.cursor(conn), SAVE_GENERATOR_SQL)
                    try:
                        prepared.bind(*active.to_row()).execute_update()
                    finally:
                        prepared.close()
                    saved += 1
        except self._handled_errors() as exc:
            self.log("[ERR] Failed to save all generators!")
            (on_failure or self._default_failure("saving generators", SAVE_GENERATOR_SQL))(exc)
            return StatementResult(False, saved, exc)
        self.log(f"[DB] Successfully saved {saved} active generators!")
        return StatementResult(True, saved)

    def delete_generator(self, active: ActiveGenerator, on_failure: FailureHandler | None = None) -> StatementResult:
        location = active.location.serialize()
        return self.build_statement(
            DELETE_GENERATOR_SQL,
            lambda prepared: prepared.set(1, location).execute_update(),
            on_failure,
        )

    def _rows_to_generators(self, rows, world_resolver=None) -> list[ActiveGenerator]:
        out = []
        for row in rows or []:
            try:
                out.append(ActiveGenerator.from_row(row, world_resolver))
            except ValueError as exc:
                self.log(f"[WARN] Skipping invalid generator row {row!r}: {exc}")
        return out

    def load_generators(self, world_resolver=None, on_failure: FailureHandler | None = None) -> StatementResult:
        return self.execute_query(
            f"SELECT {GENERATOR_COLUMNS} FROM {GENERATOR_TABLE};",
            lambda cursor: self._rows_to_generators(cursor.fetchall(), world_resolver),
            on_failure,
        )

    def get_generator(self, location: Location, world_resolver=None) -> ActiveGenerator | None:
        result = self.execute_query(
            f"SELECT {GENERATOR_COLUMNS} FROM {GENERATOR_TABLE} WHERE location=?;",
            lambda cursor: self._rows_to_generators(cursor.fetchall(), world_resolver),
            params=(location.serialize(),),
        )
        if not result.ok or not result.value:
            return None
        return result.value[0]

    def count_generators(self) -> int | None:
        result = self.execute_query(
            f"SELECT COUNT(*) FROM {GENERATOR_TABLE};",
            lambda cursor: int((cursor.fetchone() or (0,))[0]),
        )
        return result.value if result.ok else None
