from contextlib import contextmanager
from dataclasses import dataclass
import threading
import time

from sqlalchemy import event, exc as sa_exc
from sqlalchemy.pool import QueuePool

from .errors import PoolClosedError, PoolTimeoutError
from .logs import LogFn, default_log

_CHECKIN_AT = "nextgens_checkin_at"


@dataclass
class PoolSettings:
    pool_name: str = "NextGens Database Pool"
    connection_test_query: str = "SELECT 1"
    connection_timeout: float = 60.0
    idle_timeout: float = 600.0
    leak_detection_threshold: float = 180.0
    minimum_idle: int = 0
    maximum_pool_size: int = 10
    encoding: str = "utf8"


@dataclass(frozen=True)
class PoolStats:
    total: int
    idle: int
    in_use: int
    acquired: int


class ConnectionPool:
    """SQLAlchemy ``QueuePool`` handing out raw DB-API connections.

    ``factory`` opens a new driver connection. Borrowers block up to
    ``settings.connection_timeout`` seconds when every connection is in use.
    Connections idle for longer than ``ALIVE_BYPASS_WINDOW`` are checked with
    ``settings.connection_test_query`` on checkout; failed or expired ones are
    replaced by the pool.
    """

    ALIVE_BYPASS_WINDOW = 0.5

    def __init__(self, factory, settings: PoolSettings, log_fn: LogFn | None = None, driver_errors=(Exception,)):
        self.settings = settings
        self.log = log_fn or default_log
        self.driver_errors = tuple(driver_errors)
        maximum = max(1, settings.maximum_pool_size)
        core = max(1, min(settings.minimum_idle, maximum))
        self._pool = QueuePool(
            factory,
            pool_size=core,
            max_overflow=maximum - core,
            timeout=settings.connection_timeout,
            reset_on_return="rollback",
            logging_name=settings.pool_name,
        )
        self._lock = threading.Lock()
        self._leases: dict[int, list] = {}
        self._acquired = 0
        self._open = False
        self._closed = False
        event.listen(self._pool, "checkout", self._on_checkout)
        event.listen(self._pool, "checkin", self._on_checkin)

    @property
    def name(self) -> str:
        return self.settings.pool_name

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    def open(self):
        if self._closed:
            raise PoolClosedError(self.name)
        self._open = True
        try:
            warm = [self._pool.connect() for _ in range(max(0, self.settings.minimum_idle))]
            for conn in warm:
                conn.close()
        except BaseException:
            self.close()
            raise
        with self._lock:
            self._acquired = 0
        return self

    def stats(self) -> PoolStats:
        idle = self._pool.checkedin()
        in_use = self._pool.checkedout()
        with self._lock:
            acquired = self._acquired
        return PoolStats(total=idle + in_use, idle=idle, in_use=in_use, acquired=acquired)

    @contextmanager
    def connection(self):
        conn = self.acquire()
        try:
            yield conn
        finally:
            self.release(conn)

    def acquire(self):
        if not self.is_open:
            raise PoolClosedError(self.name)
        try:
            return self._pool.connect()
        except sa_exc.TimeoutError as exc:
            raise PoolTimeoutError(self.name, self.settings.connection_timeout) from exc

    def release(self, conn):
        if not self.is_open:
            # The pool was disposed while this connection was out.
            conn.invalidate()
            return
        conn.close()

    def close(self):
        self._closed = True
        self._pool.dispose()

    def _on_checkout(self, dbapi_connection, record, proxy):
        now = time.monotonic()
        owner, checkin_at = record.info.get(_CHECKIN_AT, (None, None))
        if owner == id(dbapi_connection):
            idle_for = now - checkin_at
            if idle_for > self.settings.idle_timeout:
                raise sa_exc.DisconnectionError("idle timeout elapsed")
            if idle_for > self.ALIVE_BYPASS_WINDOW and not self._is_alive(dbapi_connection):
                self.log(f"[WARN] {self.name} - Failed to validate connection, discarding it.")
                raise sa_exc.DisconnectionError("connection test query failed")
        with self._lock:
            self._acquired += 1
            self._leases[id(record)] = [now, False]
            overdue = self._overdue_leases(now)
        for held in overdue:
            self._report_leak(held)

    def _on_checkin(self, dbapi_connection, record):
        now = time.monotonic()
        if dbapi_connection is not None:
            record.info[_CHECKIN_AT] = (id(dbapi_connection), now)
        with self._lock:
            lease = self._leases.pop(id(record), None)
        threshold = self.settings.leak_detection_threshold
        if lease and not lease[1] and threshold and now - lease[0] > threshold:
            self._report_leak(now - lease[0])

    def _overdue_leases(self, now: float) -> list[float]:
        threshold = self.settings.leak_detection_threshold
        if not threshold or threshold <= 0:
            return []
        overdue = []
        for lease in self._leases.values():
            if not lease[1] and now - lease[0] > threshold:
                lease[1] = True
                overdue.append(now - lease[0])
        return overdue

    def _report_leak(self, held: float):
        self.log(
            f"[WARN] {self.name} - Connection leak detection triggered, "
            f"connection held for {held:.0f}s (threshold {self.settings.leak_detection_threshold:.0f}s)"
        )

    def _is_alive(self, dbapi_connection) -> bool:
        try:
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute(self.settings.connection_test_query)
                cursor.fetchall()
            finally:
                cursor.close()
            return True
        except self.driver_errors:
            return False
