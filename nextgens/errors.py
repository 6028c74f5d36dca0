class NextGensDatabaseError(Exception):
    pass


class DatabaseFileError(NextGensDatabaseError):
    """The embedded database file could not be created; persistence is unavailable."""

    def __init__(self, path, cause: OSError | None = None):
        super().__init__(f"Failed to create the database file: {path}")
        self.path = path
        self.cause = cause


class ConnectivityError(NextGensDatabaseError):
    pass


class PoolTimeoutError(ConnectivityError):
    def __init__(self, pool_name: str, timeout: float):
        super().__init__(f"{pool_name} - Connection is not available, request timed out after {timeout:.0f}s")
        self.pool_name = pool_name
        self.timeout = timeout


class PoolClosedError(ConnectivityError):
    def __init__(self, pool_name: str):
        super().__init__(f"{pool_name} - Pool is closed")
        self.pool_name = pool_name
