import logging
import logging.config
import os
import sys

_HANDLERS = ["console", "file"]


def _level(var: str, default: str) -> str:
    return os.getenv(var, default).upper()


def build_logging_config() -> dict:
    """dictConfig for the service, read from the environment at call time.

    LOG_LEVEL sets the "clicker" tree. The click loop (clicker.core) logs
    every click at DEBUG, so CORE_LOG_LEVEL can quiet it separately, and
    RPC_LOG_LEVEL does the same for the JSON-RPC client. The file handler
    rotates since a task can click for days.
    """
    level = _level("LOG_LEVEL", "INFO")
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s %(levelname)-6s %(name)14s:%(lineno)d %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": sys.stdout,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "default",
                "filename": os.getenv("CLICKER_LOG_FILE", "/tmp/clicker.log"),
                "maxBytes": int(os.getenv("CLICKER_LOG_MAX_BYTES", 10 * 1024 * 1024)),
                "backupCount": int(os.getenv("CLICKER_LOG_BACKUPS", 5)),
                "delay": True,
            },
        },
        "loggers": {
            "clicker": {
                "level": level,
                "handlers": _HANDLERS,
                "propagate": False, # Don't pass 'clicker' logs up to the root logger
            },
            # Children only filter; records still go out through "clicker"'s handlers
            "clicker.core": {
                "level": _level("CORE_LOG_LEVEL", level),
            },
            "clicker.rpc": {
                "level": _level("RPC_LOG_LEVEL", level),
            },
            "uvicorn.access": {
                "level": "WARNING", # Status polling is noisy
                "handlers": _HANDLERS,
                "propagate": False,
            },
            "httpx": {
                "level": "WARNING", # httpx logs every request at INFO
                "handlers": _HANDLERS,
                "propagate": False,
            },
        },
        # Default for all other loggers
        "root": {
            "level": "WARNING",
            "handlers": _HANDLERS,
        },
    }


def setup_logging():
    """ Apply the logging configuration. """
    logging.config.dictConfig(build_logging_config())
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
