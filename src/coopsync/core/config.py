"""Shared configuration for coopsync.

This module defines the engine configuration and how it is resolved from
explicit values, the environment, and the user config file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from coopsync.core.types import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.agritrack.ci/v1"
DEFAULT_TIMEOUT = 5.0  # seconds

ENV_BASE_URL = "COOPSYNC_API_BASE_URL"
ENV_TIMEOUT = "COOPSYNC_TIMEOUT"
ENV_TOKEN = "COOPSYNC_TOKEN"
ENV_DATA_DIR = "COOPSYNC_DATA_DIR"


@dataclass
class EngineConfig:
    """Configuration for talking to the remote store.

    Attributes:
        base_url: Base URL of the remote API (e.g., "https://api.example.com/v1").
        timeout: Bound of every remote exchange, in seconds.
        token: Bearer token, if the session is authenticated.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    token: str | None = None
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize base URL."""
        self.base_url = self.base_url.rstrip("/")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.base_url.startswith("https://")


def get_config_dir() -> Path:
    """Get the configuration directory.

    Returns:
        Path to $COOPSYNC_DATA_DIR, or ~/.coopsync.
    """
    configured = os.environ.get(ENV_DATA_DIR)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".coopsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file.

    A missing or unreadable file yields an empty configuration.
    """
    config_file = get_config_file()
    if not config_file.exists():
        return {}
    try:
        data = json.loads(config_file.read_text())
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", config_file, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: not a JSON object", config_file)
        return {}
    return data


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def _parse_timeout(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid timeout value: {value!r}") from e


def load_engine_config(
    base_url: str | None = None,
    timeout: float | None = None,
    token: str | None = None,
) -> EngineConfig:
    """Resolve the engine configuration.

    Precedence: explicit arguments, then environment variables, then the
    config file, then built-in defaults.

    Args:
        base_url: Explicit base URL.
        timeout: Explicit timeout in seconds.
        token: Explicit bearer token.

    Returns:
        The resolved EngineConfig.

    Raises:
        ConfigError: If a timeout value cannot be parsed.
    """
    file_config = load_config()

    resolved_url = (
        base_url
        or os.environ.get(ENV_BASE_URL)
        or file_config.get("api_base_url")
        or DEFAULT_BASE_URL
    )

    if timeout is not None:
        resolved_timeout = timeout
    elif os.environ.get(ENV_TIMEOUT):
        resolved_timeout = _parse_timeout(os.environ[ENV_TIMEOUT])
    elif file_config.get("timeout") is not None:
        resolved_timeout = _parse_timeout(file_config["timeout"])
    else:
        resolved_timeout = DEFAULT_TIMEOUT

    resolved_token = token or os.environ.get(ENV_TOKEN) or file_config.get("token")

    return EngineConfig(
        base_url=resolved_url,
        timeout=resolved_timeout,
        token=resolved_token or None,
    )
