"""
Configuration management for Cadence.

Settings are loaded from a TOML file (default: `cadence.toml` next to this
module) into a `CadenceConfig` dataclass. The environment variables
`MUSIC_PATH` and `CACHE_PATH` override the file; command line flags are
applied on top by the entry point.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "cadence.toml"

ENV_MUSIC_PATH = "MUSIC_PATH"
ENV_CACHE_PATH = "CACHE_PATH"


class ConfigError(ValueError):
    """Raised for invalid configuration values."""


@dataclass(frozen=True)
class CadenceConfig:
    """Loaded server configuration."""

    music_root: Path | None = None
    cache_root: Path = Path("cache")
    db_path: Path | None = None
    error_log: Path | None = None
    extensions: tuple[str, ...] = (".mp3", ".flac", ".m4a")
    debounce_seconds: float = 3.0
    watch: bool = True
    scan_on_startup: bool = False
    transcode_sources: tuple[str, ...] = ("flac",)
    transcode_target: str = "mp3"
    transcode_timeout: float = 300.0
    transcode_rules: dict[str, str] = field(default_factory=dict)
    host: str = "0.0.0.0"
    port: int = 4000

    @property
    def library_db_path(self) -> Path:
        """SQLite catalog file; defaults to `<cache>/library.sqlite3`."""
        return self.db_path or self.cache_root / "library.sqlite3"

    @property
    def error_log_path(self) -> Path:
        """Build error log; defaults to `<cache>/error_log.txt`."""
        return self.error_log or self.cache_root / "error_log.txt"

    def with_overrides(self, **overrides: Any) -> CadenceConfig:
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes) if changes else self


def _optional_path(value: object) -> Path | None:
    if value is None or value == "":
        return None
    return Path(str(value)).expanduser()


def _normalize_extensions(values: object) -> tuple[str, ...]:
    if not isinstance(values, list | tuple):
        raise ConfigError("library.extensions must be a list of strings")
    exts = []
    for v in values:
        ext = str(v).strip().lower()
        if not ext:
            continue
        exts.append(ext if ext.startswith(".") else f".{ext}")
    return tuple(exts)


def _parse(data: Mapping[str, Any]) -> CadenceConfig:
    library = data.get("library", {})
    cache = data.get("cache", {})
    watcher = data.get("watcher", {})
    transcode = data.get("transcode", {})
    server = data.get("server", {})

    defaults = CadenceConfig()

    debounce = float(watcher.get("debounce_seconds", defaults.debounce_seconds))
    if debounce < 0:
        raise ConfigError("watcher.debounce_seconds must be >= 0")

    timeout = float(transcode.get("timeout_seconds", defaults.transcode_timeout))
    if timeout <= 0:
        raise ConfigError("transcode.timeout_seconds must be > 0")

    port = int(server.get("port", defaults.port))
    if not 0 < port < 65536:
        raise ConfigError(f"server.port out of range: {port}")

    return CadenceConfig(
        music_root=_optional_path(library.get("music_root")),
        cache_root=_optional_path(cache.get("root")) or defaults.cache_root,
        db_path=_optional_path(library.get("db_path")),
        error_log=_optional_path(cache.get("error_log")),
        extensions=_normalize_extensions(library.get("extensions", list(defaults.extensions))),
        debounce_seconds=debounce,
        watch=bool(watcher.get("enabled", defaults.watch)),
        scan_on_startup=bool(library.get("scan_on_startup", defaults.scan_on_startup)),
        transcode_sources=tuple(
            str(s).lower().lstrip(".") for s in transcode.get("sources", defaults.transcode_sources)
        ),
        transcode_target=str(transcode.get("target", defaults.transcode_target)).lower(),
        transcode_timeout=timeout,
        transcode_rules={str(k).lower(): str(v) for k, v in transcode.get("rules", {}).items()},
        host=str(server.get("host", defaults.host)),
        port=port,
    )


def load_config(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> CadenceConfig:
    """
    Load configuration from a TOML file and apply environment overrides.

    Args:
        config_path: Path to the TOML file. If None, uses the default location.
            A missing default file yields the built-in defaults; a missing
            explicit file is an error.
        environ: Environment mapping (defaults to `os.environ`).

    Returns:
        Loaded CadenceConfig instance.
    """
    env = os.environ if environ is None else environ
    path = config_path or DEFAULT_CONFIG_PATH

    if path.exists():
        logger.debug("Loading config from %s", path)
        with path.open("rb") as f:
            try:
                data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"{path}: {e}") from e
    elif config_path is not None:
        raise FileNotFoundError(config_path)
    else:
        data = {}

    config = _parse(data)
    return config.with_overrides(
        music_root=_optional_path(env.get(ENV_MUSIC_PATH)),
        cache_root=_optional_path(env.get(ENV_CACHE_PATH)),
    )
