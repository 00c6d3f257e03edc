"""Configuration settings for the Parley server.

Values resolve from the loaded config file first, then from environment
variables, then from the built-in defaults.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from parley.config.defaults import get_default_config
from parley.config.schema import deep_merge
from parley.utils.logger import get_logger

logger = get_logger("parley.config")

_MISSING = object()


def _lookup(cfg: Any, key: str) -> Any:
    """Resolve a dot-path key inside nested dicts."""
    for part in key.split("."):
        if isinstance(cfg, dict) and part in cfg:
            cfg = cfg[part]
        else:
            return _MISSING
    return cfg


class Settings:
    """Application settings with property-based access."""

    def __init__(self, config: dict[str, Any] | None = None):
        self._config: dict[str, Any] = dict(config or {})
        self._defaults = get_default_config()

    @classmethod
    def from_file(cls, path: Path | str | None) -> Settings:
        instance = cls()
        if path:
            instance.load_file(path)
        return instance

    def load_file(self, path: Path | str) -> None:
        """Load a JSON config file, keeping the previous config when it is invalid."""
        config_path = Path(path)
        if not config_path.exists():
            logger.info("Config file not found, using defaults", path=str(config_path))
            return
        try:
            loaded = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error(
                "Invalid JSON syntax in config file",
                error=str(e),
                line=e.lineno,
                column=e.colno,
                path=str(config_path),
            )
            return
        if not isinstance(loaded, dict):
            logger.error(
                "Config file must contain a JSON object", path=str(config_path)
            )
            return
        self._config = deep_merge(self._config, loaded)
        logger.debug("Config loaded from file", path=str(config_path))

    def update(self, values: dict[str, Any]) -> None:
        self._config = deep_merge(self._config, values)

    # Validation helper
    def validate_or_raise(self) -> None:
        from parley.config.validation import validate_or_raise as _v

        _v(self.model, self.api_key)

    def validation_status(self) -> tuple[bool, list[str]]:
        """Return (is_valid, errors) without raising."""
        try:
            self.validate_or_raise()
            return True, []
        except ValueError as exc:
            return False, [str(exc)]

    def _get(self, key: str, env_key: str | None = None) -> Any:
        """Get config value from the loaded file, fallback to env, then default."""
        value = _lookup(self._config, key)
        if value is not _MISSING and value is not None:
            return value
        default = _lookup(self._defaults, key)
        if default is _MISSING:
            default = None
        if env_key and (env_val := os.getenv(env_key)):
            # Type conversion based on default type
            if isinstance(default, bool):
                return env_val.lower() in ("true", "1", "yes", "on")
            elif isinstance(default, int):
                return int(env_val)
            elif isinstance(default, float):
                return float(env_val)
            return env_val
        return default

    # Generation endpoint
    @property
    def api_key(self) -> str | None:
        return self._get("generation.api_key", "PARLEY_API_KEY") or os.getenv(
            "OPENAI_API_KEY"
        )

    @property
    def base_url(self) -> str:
        return self._get("generation.base_url", "PARLEY_BASE_URL")

    @property
    def model(self) -> str:
        return self._get("generation.model", "PARLEY_MODEL")

    @property
    def temperature(self) -> float:
        return float(self._get("generation.temperature", "PARLEY_TEMPERATURE"))

    @property
    def max_tokens(self) -> int:
        return int(self._get("generation.max_tokens", "PARLEY_MAX_TOKENS"))

    @property
    def turn_timeout_seconds(self) -> float:
        return float(self._get("turn_timeout_seconds", "PARLEY_TURN_TIMEOUT"))

    # Context assembly
    @property
    def max_document_chars(self) -> int:
        return int(self._get("context.max_document_chars"))

    @property
    def context_separator(self) -> str:
        return self._get("context.separator")

    @property
    def truncation_marker(self) -> str:
        return self._get("context.truncation_marker")

    @property
    def formatting(self) -> str:
        return self._get("formatting", "PARLEY_FORMATTING")

    @property
    def max_message_chars(self) -> int:
        return int(self._get("max_message_chars"))

    # Storage
    @property
    def database_url(self) -> str:
        return self._get("database_url", "PARLEY_DATABASE_URL")

    # Rate limiting
    @property
    def rate_limit_max_requests(self) -> int:
        return int(self._get("rate_limit.max_requests", "RATE_LIMIT_MAX_REQUESTS"))

    @property
    def rate_limit_window_seconds(self) -> float:
        return float(
            self._get("rate_limit.window_seconds", "RATE_LIMIT_WINDOW_SECONDS")
        )

    # Server Configuration
    @property
    def server_host(self) -> str:
        return self._get("server_host", "SERVER_HOST")

    @property
    def server_port(self) -> int:
        return int(self._get("server_port", "SERVER_PORT"))

    # Logging Configuration
    @property
    def log_level(self) -> str:
        return self._get("log_level", "LOG_LEVEL")

    @property
    def log_format(self) -> str:
        return self._get("log_format", "LOG_FORMAT")

    @property
    def log_colors(self) -> bool:
        return self._get("log_colors", "LOG_COLORS")


# Global settings instance (populated from the config file at startup)
settings = Settings()
