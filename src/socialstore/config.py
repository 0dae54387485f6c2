"""StoreConfig: project-local config for the social agent's data store.

Default layout:

    socialstore.toml      # project config (optional; defaults apply without it)
    .env                  # optional: SOCIAL_AGENT_DATA_DIR
    ~/.social-agent/data/ # one JSON document per concern
        queue.json
        content-graph.json

socialstore.toml example:

    [store]
    data_dir = "~/.social-agent/data"
    lock_timeout_ms = 5000
    cross_process_lock = false

    [dedup]
    vectorizer = "letters"          # or "fastembed:BAAI/bge-small-en-v1.5"
    similarity_threshold = 0.75

    [logging]
    level = "WARNING"
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "socialstore.toml"
_DATA_DIR_ENV = "SOCIAL_AGENT_DATA_DIR"


def default_data_dir() -> Path:
    return Path.home() / ".social-agent" / "data"


@dataclass
class StoreSection:
    data_dir: Path = field(default_factory=default_data_dir)
    lock_timeout_ms: int = 5000
    cross_process_lock: bool = False


@dataclass
class DedupConfig:
    vectorizer: str = "letters"
    similarity_threshold: float = 0.75


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class StoreConfig:
    """Resolved configuration for one data directory."""

    root: Path                      # directory that contains socialstore.toml
    store: StoreSection = field(default_factory=StoreSection)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def data_dir(self) -> Path:
        return self.store.data_dir

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME


def _load_env(root: Path) -> dict[str, str]:
    """Parse a simple KEY=VALUE .env file."""
    env_file = root / ".env"
    if not env_file.exists():
        return {}
    env: dict[str, str] = {}
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def _resolve_dir(raw: str, root: Path) -> Path:
    path = Path(raw).expanduser()
    return path if path.is_absolute() else root / path


def load_config(root: Path | str | None = None) -> StoreConfig:
    """Load socialstore.toml from root (or search upward from cwd if root is None).

    Raises ValueError when the file exists but holds invalid values.
    """
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            try:
                raw = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                msg = f"{config_path}: {e}"
                raise ValueError(msg) from e

    env = _load_env(root_path)

    store_section = raw.get("store", {})
    dedup_section = raw.get("dedup", {})
    log_section = raw.get("logging", {})

    # Process environment wins over .env, which wins over the toml file
    data_dir_raw = os.environ.get(_DATA_DIR_ENV) or env.get(_DATA_DIR_ENV) or store_section.get("data_dir")
    data_dir = _resolve_dir(str(data_dir_raw), root_path) if data_dir_raw else default_data_dir()

    threshold = float(dedup_section.get("similarity_threshold", 0.75))
    if not 0.0 <= threshold <= 1.0:
        msg = f"{config_path}: dedup.similarity_threshold must be between 0 and 1, got {threshold}"
        raise ValueError(msg)

    timeout = int(store_section.get("lock_timeout_ms", 5000))
    if timeout < 0:
        msg = f"{config_path}: store.lock_timeout_ms must not be negative, got {timeout}"
        raise ValueError(msg)

    return StoreConfig(
        root=root_path,
        store=StoreSection(
            data_dir=data_dir,
            lock_timeout_ms=timeout,
            cross_process_lock=bool(store_section.get("cross_process_lock", False)),
        ),
        dedup=DedupConfig(
            vectorizer=str(dedup_section.get("vectorizer", "letters")),
            similarity_threshold=threshold,
        ),
        logging=LoggingConfig(
            level=str(log_section.get("level", "WARNING")).upper(),
        ),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for socialstore.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, data_dir: str | None = None) -> Path:
    """Write a default socialstore.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"socialstore.toml already exists at {config_path}"
        raise FileExistsError(msg)

    data_line = f'data_dir = "{data_dir}"' if data_dir else '# data_dir = "~/.social-agent/data"   # default'
    content = f"""\
[store]
{data_line}
# lock_timeout_ms = 5000          # advisory lock acquisition budget
# cross_process_lock = false      # lock documents around every mutation

# [dedup]
# vectorizer = "letters"          # or "fastembed:BAAI/bge-small-en-v1.5"
# similarity_threshold = 0.75     # seed for new content graphs

# [logging]
# level = "WARNING"
"""
    config_path.write_text(content)
    return config_path
