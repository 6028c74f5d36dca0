from dataclasses import dataclass
from pathlib import Path

import yaml

from .logs import LogFn, default_log

SQLITE_RELATIVE_PATH = Path("plugins") / "NextGens" / "generators.db"


@dataclass
class DbConfig:
    mysql_enabled: bool = False
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = "nextgens"
    use_ssl: bool = False
    data_folder: str = "."

    def sqlite_path(self) -> Path:
        return Path(self.data_folder) / SQLITE_RELATIVE_PATH


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_port(value, default: int = 3306) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        return default
    return port if 0 < port < 65536 else default


def config_from_mapping(data, data_folder: str = ".") -> DbConfig:
    """Build a DbConfig from the parsed ``config.yml`` document."""
    defaults = DbConfig(data_folder=str(data_folder))
    section = data.get("mysql") if isinstance(data, dict) else None
    if not isinstance(section, dict):
        return defaults
    return DbConfig(
        mysql_enabled=_as_bool(section.get("enabled")),
        host=str(section.get("host") or defaults.host),
        port=_as_port(section.get("port"), defaults.port),
        user=str(section.get("user") or defaults.user),
        password="" if section.get("password") is None else str(section.get("password")),
        database=str(section.get("database") or defaults.database),
        use_ssl=_as_bool(section.get("useSSL")),
        data_folder=str(data_folder),
    )


def load_config(path: str | Path, data_folder: str | None = None, log_fn: LogFn | None = None) -> DbConfig:
    log = log_fn or default_log
    path = Path(path)
    folder = str(data_folder) if data_folder is not None else "."
    if not path.exists():
        return DbConfig(data_folder=folder)
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        log(f"[CONFIG] Could not read {path}, using defaults: {exc}")
        return DbConfig(data_folder=folder)
    return config_from_mapping(data, folder)
