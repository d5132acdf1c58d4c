"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < env vars < CLI flags
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from adkchat.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ServerConfig:
    base_url: str = "http://localhost:8000"
    run_path: str = "/run_sse"
    timeout_seconds: float = 120.0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class AgentConfig:
    app_name: str = "startup_investor_agent"
    user_id: str = ""


@dataclass
class StorageConfig:
    history_db: str = "~/.adkchat/history.db"
    persist: bool = True


@dataclass
class AttachmentsConfig:
    max_size_mb: int = 20


@dataclass
class LoggingConfig:
    level: str = "WARNING"


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class AdkChatConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    attachments: AttachmentsConfig = field(default_factory=AttachmentsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict:
        return asdict(self)

    def validate(self) -> None:
        """Raise ``ConfigurationError`` on values the client cannot use."""
        if not self.server.base_url.strip():
            raise ConfigurationError("server.base_url must not be empty")
        if not self.server.run_path.startswith("/"):
            raise ConfigurationError(
                f"server.run_path must start with '/': {self.server.run_path!r}"
            )
        if self.server.timeout_seconds <= 0:
            raise ConfigurationError("server.timeout_seconds must be positive")
        if self.attachments.max_size_mb <= 0:
            raise ConfigurationError("attachments.max_size_mb must be positive")
        if not isinstance(logging.getLevelName(self.logging.level.upper()), int):
            raise ConfigurationError(f"Unknown log level: {self.logging.level!r}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "ADKCHAT_SERVER_BASE_URL":    ("server.base_url", str),
    "ADKCHAT_SERVER_RUN_PATH":    ("server.run_path", str),
    "ADKCHAT_SERVER_TIMEOUT":     ("server.timeout_seconds", float),
    "ADKCHAT_AGENT_APP_NAME":     ("agent.app_name", str),
    "ADKCHAT_AGENT_USER_ID":      ("agent.user_id", str),
    "ADKCHAT_STORAGE_HISTORY_DB": ("storage.history_db", str),
    "ADKCHAT_STORAGE_PERSIST":    ("storage.persist", bool),
    "ADKCHAT_ATTACHMENTS_MAX_MB": ("attachments.max_size_mb", int),
    "ADKCHAT_LOG_LEVEL":          ("logging.level", str),
}

CONFIG_CANDIDATES = (
    Path("adkchat.yaml"),
    Path("adkchat.yml"),
    Path("~/.config/adkchat/config.yaml"),
    Path("~/.adkchat/config.yaml"),
)


def find_config_path(cwd: Path | None = None) -> Path | None:
    """Return the first existing config file in the standard locations."""
    base = cwd or Path.cwd()
    for candidate in CONFIG_CANDIDATES:
        p = candidate.expanduser()
        if not p.is_absolute():
            p = base / p
        if p.is_file():
            return p
    return None


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> AdkChatConfig:
    """
    Build an AdkChatConfig by layering sources in precedence order:

        defaults  <  config file  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- Build sections from raw ---
    cfg = AdkChatConfig(
        server=_build_section(ServerConfig, raw.get("server", {})),
        agent=_build_section(AgentConfig, raw.get("agent", {})),
        storage=_build_section(StorageConfig, raw.get("storage", {})),
        attachments=_build_section(AttachmentsConfig, raw.get("attachments", {})),
        logging=_build_section(LoggingConfig, raw.get("logging", {})),
    )

    # --- 2. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 3. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            if value is not None:
                _apply_dotpath(cfg, dotpath, value)

    return cfg
