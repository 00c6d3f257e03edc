"""uvicorn ``log_config`` built from Parley settings.

uvicorn applies this dict after the app's own logging is configured, so its
loggers are pointed at the same renderer ``configure_structlog`` uses.
"""

import structlog

from parley.config.settings import Settings
from parley.utils.logger import FOREIGN_PRE_CHAIN, QUIET_LOGGERS, build_renderer

_UVICORN_NAMES = {"uvicorn.error": "uvicorn.server", "uvicorn.access": "uvicorn.http"}


def _rename_uvicorn_loggers(logger, method_name, event_dict):
    name = event_dict.get("logger")
    if name in _UVICORN_NAMES:
        event_dict["logger"] = _UVICORN_NAMES[name]
    return event_dict


def get_logging_config(settings: Settings | None = None) -> dict:
    if settings is None:
        from parley.config.settings import settings

    level = str(settings.log_level).upper()
    handler = {"handlers": ["default"], "level": level, "propagate": False}
    quiet = {"handlers": ["default"], "level": "WARNING", "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": build_renderer(settings.log_format, settings.log_colors),
                "foreign_pre_chain": [
                    *FOREIGN_PRE_CHAIN,
                    _rename_uvicorn_loggers,
                    structlog.processors.UnicodeDecoder(),
                ],
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            **{
                name: dict(handler)
                for name in ("uvicorn", "uvicorn.access", "uvicorn.error")
            },
            **{name: dict(quiet) for name in QUIET_LOGGERS},
        },
    }
