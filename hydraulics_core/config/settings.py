# =============================================================================
# hydraulics_core/config/settings.py
# Application Settings (TOML file + .env + environment overrides)
# =============================================================================
"""
Settings loader for the sync core.

Resolution order (later wins):
    1. Dataclass defaults
    2. TOML file (argument, $HYDRAULICS_CONFIG, or config/hydraulics.toml)
    3. Environment variables (a local .env file is loaded first)

Example config/hydraulics.toml:

    remote_provider = "supabase"
    local_db_path = "local_data/workorders.db"
    log_level = "INFO"

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [sync]
    max_attempts = 5
    connectivity_debounce_seconds = 2.0

    [completion]
    cost_required = false
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

try:
    import tomllib
except ImportError:
    import tomli as tomllib

from dotenv import load_dotenv

from hydraulics_core.errors import ConfigurationError
from hydraulics_core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "hydraulics.toml"
DEFAULT_DB_PATH = Path("local_data") / "workorders.db"

REMOTE_PROVIDERS = ("memory", "supabase")


@dataclass
class SupabaseSettings:
    """Connection details for the Supabase document tables."""
    url: str = ""
    key: str = ""
    table_prefix: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.key)


@dataclass
class SyncSettings:
    """Tuning knobs for connectivity monitoring and mutation replay."""
    max_attempts: int = 5
    connectivity_debounce_seconds: float = 2.0
    auto_sync_interval: float = 30.0         # 0 disables the periodic pass
    check_interval_online: float = 30.0
    check_interval_offline: float = 10.0
    connection_timeout: float = 5.0
    tombstone_ttl_days: float = 30.0
    purge_synced: bool = True


@dataclass
class CompletionSettings:
    """Details an item needs before it can move to Complete."""
    parts_required: bool = True
    time_required: bool = True
    cost_required: bool = True


@dataclass
class Settings:
    """Top-level application settings."""
    remote_provider: str = "memory"
    local_db_path: Path = DEFAULT_DB_PATH
    log_level: str = "INFO"
    log_to_file: bool = False
    supabase: SupabaseSettings = field(default_factory=SupabaseSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    completion: CompletionSettings = field(default_factory=CompletionSettings)

    def validate(self) -> Settings:
        """Check cross-field rules; raises ConfigurationError."""
        if self.remote_provider not in REMOTE_PROVIDERS:
            raise ConfigurationError(
                f"Unknown remote provider '{self.remote_provider}'",
                config_key="remote_provider",
                expected_type=" | ".join(REMOTE_PROVIDERS),
            )
        if self.remote_provider == "supabase" and not self.supabase.is_configured:
            raise ConfigurationError(
                "Supabase provider selected but url/key are missing",
                config_key="supabase",
            )
        if self.sync.max_attempts < 1:
            raise ConfigurationError(
                "sync.max_attempts must be at least 1",
                config_key="sync.max_attempts",
                expected_type="int >= 1",
            )
        for name in (
            "connectivity_debounce_seconds",
            "auto_sync_interval",
            "check_interval_online",
            "check_interval_offline",
            "connection_timeout",
            "tombstone_ttl_days",
        ):
            if getattr(self.sync, name) < 0:
                raise ConfigurationError(
                    f"sync.{name} cannot be negative",
                    config_key=f"sync.{name}",
                    expected_type="number >= 0",
                )
        return self


# Environment variable -> (section, key, converter)
ENV_OVERRIDES = {
    "SUPABASE_URL": ("supabase", "url", str),
    "SUPABASE_KEY": ("supabase", "key", str),
    "HYDRAULICS_REMOTE_PROVIDER": (None, "remote_provider", str),
    "HYDRAULICS_DB_PATH": (None, "local_db_path", Path),
    "HYDRAULICS_LOG_LEVEL": (None, "log_level", str),
    "HYDRAULICS_MAX_SYNC_ATTEMPTS": ("sync", "max_attempts", int),
}


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(
            f"Invalid TOML in {path}: {e}",
            config_key=str(path),
        ) from e


def _build_section(cls, values: Mapping[str, Any], section: str):
    known = {f.name: f for f in fields(cls)}
    kwargs = {}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"Ignoring unknown setting '{section}{key}'")
            continue
        kwargs[key] = value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConfigurationError(str(e), config_key=section.rstrip(".") or "root") from e


def _coerce(value: str, converter, env_name: str):
    try:
        return converter(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {env_name}: {value!r}",
            config_key=env_name,
            expected_type=converter.__name__,
        ) from e


def load_settings(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
    use_dotenv: bool = True,
) -> Settings:
    """
    Load settings from TOML and the environment.

    Args:
        path: Explicit TOML file. Missing explicit files are an error.
        environ: Environment mapping (default: os.environ)
        use_dotenv: Load a .env file into os.environ first

    Returns:
        Validated Settings
    """
    if use_dotenv and environ is None:
        load_dotenv()
    env = os.environ if environ is None else environ

    explicit = path or env.get("HYDRAULICS_CONFIG")
    raw: Dict[str, Any] = {}
    if explicit:
        config_path = Path(explicit)
        if not config_path.exists():
            raise ConfigurationError(
                f"Config file not found: {config_path}",
                config_key="HYDRAULICS_CONFIG",
            )
        raw = _read_toml(config_path)
        logger.info(f"Loaded settings from {config_path}")
    elif DEFAULT_CONFIG_PATH.exists():
        raw = _read_toml(DEFAULT_CONFIG_PATH)
        logger.info(f"Loaded settings from {DEFAULT_CONFIG_PATH}")

    raw = dict(raw)
    supabase_raw = dict(raw.pop("supabase", {}) or {})
    sync_raw = dict(raw.pop("sync", {}) or {})
    completion_raw = dict(raw.pop("completion", {}) or {})

    for env_name, (section, key, converter) in ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value in (None, ""):
            continue
        target = {"supabase": supabase_raw, "sync": sync_raw}.get(section, raw)
        target[key] = _coerce(value, converter, env_name)

    if "local_db_path" in raw:
        raw["local_db_path"] = Path(raw["local_db_path"])

    settings = _build_section(Settings, raw, "")
    settings.supabase = _build_section(SupabaseSettings, supabase_raw, "supabase.")
    settings.sync = _build_section(SyncSettings, sync_raw, "sync.")
    settings.completion = _build_section(CompletionSettings, completion_raw, "completion.")
    return settings.validate()
