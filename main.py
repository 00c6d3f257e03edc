#!/usr/bin/env python3
"""Main entry point for the Parley server.

Bootstraps a Uvicorn ASGI server for parley.api.server:app.
Loads a .env file from the working directory if present, then an optional
JSON config file (--config or PARLEY_CONFIG).
"""

import os
import sys
from argparse import ArgumentParser
from pathlib import Path

# Add the project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

if __name__ == "__main__":
    # Parse arguments FIRST so --help works without configuration
    parser = ArgumentParser(description="Start the Parley server")
    parser.add_argument(
        "--config",
        help="Path to a JSON config file (defaults to PARLEY_CONFIG if set)",
    )
    parser.add_argument("--host", help="Bind address. Overrides config.")
    parser.add_argument("--port", type=int, help="Bind port. Overrides config.")
    parser.add_argument(
        "--log-format",
        choices=["pretty", "json"],
        help="Log format (pretty or json). Overrides config and LOG_FORMAT env var.",
    )
    parser.add_argument(
        "--log-colors",
        type=lambda x: x.lower() in ("true", "1", "yes", "on"),
        help="Enable colored logs (true/false). Overrides LOG_COLORS env var.",
    )
    args = parser.parse_args()

    # Logging env vars must be set before the logger module is imported
    if args.log_format:
        os.environ["LOG_FORMAT"] = args.log_format
    if args.log_colors is not None:
        os.environ["LOG_COLORS"] = "true" if args.log_colors else "false"

    from dotenv import load_dotenv

    env_file = Path.cwd() / ".env"
    load_dotenv(dotenv_path=env_file, override=False)

    from parley.utils.logger import configure_structlog, get_logger

    startup_logger = get_logger("server.startup")
    if env_file.exists():
        startup_logger.debug("Loaded .env file", path=str(env_file))

    from parley.config import get_logging_config, settings

    config_path = args.config or os.getenv("PARLEY_CONFIG")
    if config_path:
        settings.load_file(Path(config_path).expanduser())

    overrides = {}
    if args.host:
        overrides["server_host"] = args.host
    if args.port:
        overrides["server_port"] = args.port
    if args.log_format:
        overrides["log_format"] = args.log_format
    if args.log_colors is not None:
        overrides["log_colors"] = args.log_colors
    if overrides:
        settings.update(overrides)

    # Re-apply logging with values from the config file
    configure_structlog(
        level=settings.log_level,
        log_format=settings.log_format,
        colors=settings.log_colors,
    )

    try:
        settings.validate_or_raise()
    except ValueError as e:
        startup_logger.error("Configuration validation failed", error=str(e))
        sys.exit(1)

    import uvicorn

    startup_logger.info(
        "Starting Parley server",
        server_url=f"http://{settings.server_host}:{settings.server_port}",
        docs_url=f"http://{settings.server_host}:{settings.server_port}/docs",
        model=settings.model,
        database_url=settings.database_url,
    )

    try:
        uvicorn.run(
            "parley.api.server:app",
            host=settings.server_host,
            port=settings.server_port,
            log_config=get_logging_config(settings),
            lifespan="on",
        )
    except KeyboardInterrupt:
        startup_logger.info("Server stopped by user")
    except Exception as e:
        startup_logger.error("Server failed", exc_info=True, error=str(e))
        sys.exit(1)
