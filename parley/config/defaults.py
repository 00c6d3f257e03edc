"""Default configuration values for Parley."""

from typing import Any


def get_default_config() -> dict[str, Any]:
    """Return the default configuration dictionary."""
    return {
        "generation": {
            "api_key": None,
            "base_url": "https://api.openai.com/v1",
            "model": "gpt-4o-mini",
            "temperature": 0.7,
            "max_tokens": 4096,
        },
        # Ceiling for one turn: generation head wait plus the full stream drain
        "turn_timeout_seconds": 60,
        "context": {
            "max_document_chars": 10000,
            "separator": "\n\n---\n\n",
            "truncation_marker": "...",
        },
        # "plain" or "structured"
        "formatting": "plain",
        "max_message_chars": 10000,
        "database_url": "sqlite+pysqlite:///./parley.sqlite",
        "rate_limit": {
            "max_requests": 100,
            "window_seconds": 60,
        },
        "server_host": "localhost",
        "server_port": 8765,
        "log_level": "INFO",
        "log_format": "pretty",
        "log_colors": True,
    }
