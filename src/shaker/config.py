"""Settings for the shaker CLI.

The project root is the nearest directory holding ``shaker.toml``, found
with pyrootutils; without one the working directory is used. The database
path is resolved in this order:

1. ``shaker.toml``: ``[database] path = "..."``
2. ``.env``: ``SHAKER_DATABASE=...``
3. ``data/shaker.db`` under the project root

``shaker.toml`` may also tune key generation::

    [ordinal]
    max_length = 10   # longest local key before siblings are rebalanced
    headroom = 62     # spacing left between keys laid out in bulk
"""

import tomllib
from dataclasses import dataclass
from pathlib import Path

import pyrootutils
import tomlkit

from .errors import ConfigError
from .ordinal import DEFAULT_HEADROOM, DEFAULT_MAX_LENGTH

CONFIG_NAME = "shaker.toml"
ENV_NAME = ".env"
ENV_KEY = "SHAKER_DATABASE"
DEFAULT_DATABASE = Path("data") / "shaker.db"


@dataclass
class Settings:
    """Resolved configuration."""
    root: Path
    database: Path
    max_key_length: int = DEFAULT_MAX_LENGTH
    headroom: int = DEFAULT_HEADROOM

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_NAME

    @property
    def backups_dir(self) -> Path:
        return self.database.parent / "backups"


def find_project_root(start: Path | None = None) -> Path:
    """Nearest directory at or above ``start`` that holds ``shaker.toml``."""
    search_from = start or Path.cwd()
    try:
        return Path(pyrootutils.find_root(search_from=search_from, indicator=CONFIG_NAME))
    except FileNotFoundError:
        return Path(search_from)


def _read_config(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, "rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e


def _read_env(path: Path) -> str | None:
    if not path.exists():
        return None
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line.startswith(f"{ENV_KEY}="):
                return line.split("=", 1)[1].strip().strip('"').strip("'")
    return None


def _positive_int(section: dict, key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"[ordinal] {key} must be a positive integer, got {value!r}")
    return value


def load_settings(root: Path | None = None) -> Settings:
    """Resolve settings for the project at (or above) ``root``.

    Raises:
        ConfigError: ``shaker.toml`` is malformed or holds invalid values.
    """
    root = find_project_root(root)
    config = _read_config(root / CONFIG_NAME)

    # Priority 1: shaker.toml
    database = config.get("database", {}).get("path")
    # Priority 2: .env
    if database is None:
        database = _read_env(root / ENV_NAME)
    # Default
    path = Path(database) if database else DEFAULT_DATABASE
    if not path.is_absolute():
        path = root / path

    ordinal = config.get("ordinal", {})
    return Settings(
        root=root,
        database=path,
        max_key_length=_positive_int(ordinal, "max_length", DEFAULT_MAX_LENGTH),
        headroom=_positive_int(ordinal, "headroom", DEFAULT_HEADROOM),
    )


def write_database_path(config_path: Path, database: str | None) -> None:
    """Point ``[database] path`` at another file, or drop the override.

    Comments and other tables in the file are preserved.
    """
    if config_path.exists():
        with open(config_path, "r") as f:
            config = tomlkit.load(f)
    else:
        config = tomlkit.document()

    if database is None:
        if "database" in config:
            del config["database"]
    else:
        if "database" not in config:
            config["database"] = tomlkit.table()
        config["database"]["path"] = database

    with open(config_path, "w") as f:
        tomlkit.dump(config, f)
