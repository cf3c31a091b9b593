"""Configuration management with validation and hot-reload support.

Configuration precedence (highest to lowest):
1. Environment variables (MCP_*)
2. YAML config file (proxmox_mcp.yml)
3. Default values

Example proxmox_mcp.yml:
    server:
      workspace_path: "~/infra/homelab"
      http_host: "127.0.0.1"
      http_port: 8770
      log_level: "INFO"

    sessions:
      timeout_seconds: 1800
      sweep_interval_seconds: 300

    cache:
      ttl_seconds: 300

Usage:
    config = load_config()
    setup_hot_reload(config)
    config.register_reload_callback(server.apply_config)
"""

import asyncio
import logging
import os
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "proxmox_mcp.yml"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServerConfig:
    """Server configuration.

    Attributes:
        version: Configuration schema version
        workspace_path: Workspace root directory (normalized to an absolute path)
        http_host: HTTP transport bind address
        http_port: HTTP transport port
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        tool_timeout_seconds: Optional upper bound for a single tool call; 0 (the default)
            leaves calls bounded only by the upstream client's own timeout
    """

    version: str = "1.0.0"
    workspace_path: str = "."
    http_host: str = "127.0.0.1"
    http_port: int = 8770
    log_level: str = "INFO"
    log_file: str | None = None
    tool_timeout_seconds: float = 0

    def __post_init__(self) -> None:
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            msg = f"log_level must be one of {list(VALID_LOG_LEVELS)}, got '{self.log_level}'"
            raise ValueError(msg)

        if not (0 < self.http_port < 65536):
            msg = f"http_port must be 1-65535, got {self.http_port}"
            raise ValueError(msg)

        if self.tool_timeout_seconds < 0:
            msg = f"tool_timeout_seconds must be >= 0, got {self.tool_timeout_seconds}"
            raise ValueError(msg)

        normalized = str(Path(self.workspace_path).expanduser().resolve())
        object.__setattr__(self, "workspace_path", normalized)


@dataclass(frozen=True)
class SessionConfig:
    """Session store configuration.

    Attributes:
        timeout_seconds: Idle time after which a session expires (default: 30 min)
        sweep_interval_seconds: Interval of the background expiry sweep (default: 5 min)
        max_sessions: Maximum concurrent sessions (0 = unlimited)
    """

    version: str = "1.0.0"
    timeout_seconds: float = 1800
    sweep_interval_seconds: float = 300
    max_sessions: int = 0

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            msg = f"timeout_seconds must be > 0, got {self.timeout_seconds}"
            raise ValueError(msg)

        if self.sweep_interval_seconds <= 0:
            msg = f"sweep_interval_seconds must be > 0, got {self.sweep_interval_seconds}"
            raise ValueError(msg)

        if self.max_sessions < 0:
            msg = f"max_sessions must be >= 0, got {self.max_sessions}"
            raise ValueError(msg)


@dataclass(frozen=True)
class CacheConfig:
    """Resource cache configuration."""

    version: str = "1.0.0"
    ttl_seconds: float = 300
    max_entries: int = 256

    def __post_init__(self) -> None:
        if self.ttl_seconds < 0:
            msg = f"ttl_seconds must be >= 0, got {self.ttl_seconds}"
            raise ValueError(msg)

        if self.max_entries <= 0:
            msg = f"max_entries must be > 0, got {self.max_entries}"
            raise ValueError(msg)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability configuration.

    Attributes:
        structured_logging: Emit JSON log lines instead of plain text
        log_buffer_size: Records kept in memory for the logs resource domain
        metrics_enabled: Whether to record metric samples
    """

    version: str = "1.0.0"
    structured_logging: bool = False
    log_buffer_size: int = 1000
    metrics_enabled: bool = True

    def __post_init__(self) -> None:
        if self.log_buffer_size <= 0:
            msg = f"log_buffer_size must be > 0, got {self.log_buffer_size}"
            raise ValueError(msg)


_SECTIONS: dict[str, type] = {
    "server": ServerConfig,
    "sessions": SessionConfig,
    "cache": CacheConfig,
    "observability": ObservabilityConfig,
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# env var -> (section, field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, str, Any]] = {
    "MCP_WORKSPACE_PATH": ("server", "workspace_path", str),
    "MCP_HTTP_HOST": ("server", "http_host", str),
    "MCP_HTTP_PORT": ("server", "http_port", int),
    "MCP_LOG_LEVEL": ("server", "log_level", str),
    "MCP_LOG_FILE": ("server", "log_file", str),
    "MCP_TOOL_TIMEOUT": ("server", "tool_timeout_seconds", float),
    "MCP_SESSION_TIMEOUT": ("sessions", "timeout_seconds", float),
    "MCP_SESSION_SWEEP_INTERVAL": ("sessions", "sweep_interval_seconds", float),
    "MCP_MAX_SESSIONS": ("sessions", "max_sessions", int),
    "MCP_CACHE_TTL": ("cache", "ttl_seconds", float),
    "MCP_STRUCTURED_LOGGING": ("observability", "structured_logging", _parse_bool),
    "MCP_METRICS_ENABLED": ("observability", "metrics_enabled", _parse_bool),
}


@dataclass
class Config:
    """Root configuration object.

    Attributes:
        server: Server configuration
        sessions: Session store configuration
        cache: Resource cache configuration
        observability: Observability configuration
        _config_path: Path to config file (for hot-reload)
        _reload_callbacks: Callbacks invoked with the config after a reload
    """

    server: ServerConfig = field(default_factory=ServerConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    _config_path: Path | None = None
    _reload_callbacks: list = field(default_factory=list)

    def register_reload_callback(self, callback: Any) -> None:
        """Register a callback to be called on config reload.

        Args:
            callback: Function (or coroutine function) taking the reloaded Config
        """
        self._reload_callbacks.append(callback)
        logger.info("Registered reload callback: %s", getattr(callback, "__name__", callback))

    def reload(self) -> bool:
        """Reload configuration from file and environment.

        Returns:
            True if the configuration was reloaded
        """
        if not (self._config_path and self._config_path.exists()):
            logger.warning("Config file not found, skipping reload")
            return False

        logger.info("Reloading configuration from %s", self._config_path)
        reloaded = load_config(config_path=self._config_path)
        for section in _SECTIONS:
            setattr(self, section, getattr(reloaded, section))

        for callback in self._reload_callbacks:
            name = getattr(callback, "__name__", repr(callback))
            try:
                if asyncio.iscoroutinefunction(callback):
                    try:
                        loop = asyncio.get_running_loop()
                    except RuntimeError:
                        asyncio.run(callback(self))
                    else:
                        loop.create_task(callback(self))
                else:
                    callback(self)
                logger.info("Reload callback %s completed", name)
            except Exception as e:
                logger.exception("Reload callback %s failed: %s", name, e)

        logger.info("Configuration reloaded successfully")
        return True

    def to_dict(self) -> dict[str, Any]:
        return {section: dict(getattr(self, section).__dict__) for section in _SECTIONS}


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Optional path to config YAML file (default: ./proxmox_mcp.yml)

    Returns:
        Config object

    Raises:
        ValueError: A value fails validation

    Environment variables:
        MCP_WORKSPACE_PATH, MCP_HTTP_HOST, MCP_HTTP_PORT, MCP_LOG_LEVEL,
        MCP_LOG_FILE, MCP_TOOL_TIMEOUT, MCP_SESSION_TIMEOUT,
        MCP_SESSION_SWEEP_INTERVAL, MCP_MAX_SESSIONS, MCP_CACHE_TTL,
        MCP_STRUCTURED_LOGGING, MCP_METRICS_ENABLED
    """
    config_path = Path(config_path) if config_path is not None else Path(DEFAULT_CONFIG_FILE)
    values: dict[str, dict[str, Any]] = {section: {} for section in _SECTIONS}

    if config_path.exists():
        logger.info("Loading configuration from %s", config_path)
        try:
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Failed to load config from %s: %s", config_path, e)
            logger.info("Using default configuration with environment overrides")
        else:
            if not isinstance(yaml_config, dict):
                logger.warning(
                    "Ignoring %s: expected a mapping at the top level, got %s",
                    config_path,
                    type(yaml_config).__name__,
                )
                yaml_config = {}
            for section, cls in _SECTIONS.items():
                section_values = yaml_config.get(section) or {}
                if not isinstance(section_values, dict):
                    logger.warning("Ignoring %s section: expected a mapping", section)
                    continue
                known = cls.__dataclass_fields__
                unknown = set(section_values) - set(known)
                if unknown:
                    logger.warning("Ignoring unknown %s settings: %s", section, sorted(unknown))
                values[section].update({k: v for k, v in section_values.items() if k in known})

    for env_var, (section, name, parse) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_var)
        if raw:
            try:
                values[section][name] = parse(raw)
            except ValueError as e:
                msg = f"Invalid value for {env_var}: {raw!r}"
                raise ValueError(msg) from e

    try:
        config = Config(**{section: cls(**values[section]) for section, cls in _SECTIONS.items()})
    except ValueError as e:
        logger.exception("Configuration validation failed: %s", e)
        raise

    config._config_path = config_path if config_path.exists() else None
    return config


def setup_hot_reload(config: Config) -> bool:
    """Install a SIGHUP handler that reloads ``config``.

    Returns:
        False on platforms without SIGHUP
    """
    if not hasattr(signal, "SIGHUP"):
        logger.info("SIGHUP not available; hot-reload disabled")
        return False

    def handle_sighup(signum: int, frame: Any) -> None:
        logger.info("Received SIGHUP, reloading configuration...")
        try:
            config.reload()
        except Exception as e:
            logger.exception("Failed to reload configuration: %s", e)

    signal.signal(signal.SIGHUP, handle_sighup)
    logger.info("Hot-reload enabled: send SIGHUP to reload configuration")
    return True


# Global config instance (lazy-loaded)
_global_config: Config | None = None


def get_config() -> Config:
    """Get global config instance (singleton pattern)."""
    global _global_config

    if _global_config is None:
        _global_config = load_config()

    return _global_config
