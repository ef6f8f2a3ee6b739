"""
Logging configuration for qcap-registry.

uvicorn access lines for the liveness endpoint are dropped so polling
orchestrators do not flood the log; every other request stays logged.
"""

import logging
import logging.config
from typing import Dict, Any

HEALTH_PATHS = frozenset({"/health"})


class HealthCheckFilter(logging.Filter):
    """Filter to suppress liveness probe lines from uvicorn access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Drop ``GET /health`` access records, matching the request path exactly."""
        if record.name != "uvicorn.access":
            return True
        # uvicorn passes (client_addr, method, full_path, http_version, status_code)
        args = record.args
        if not isinstance(args, tuple) or len(args) < 3:
            return True
        method, full_path = args[1], str(args[2])
        return not (method == "GET" and full_path.split("?", 1)[0] in HEALTH_PATHS)


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """Get logging configuration with health check suppression."""
    level = level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "health_check_filter": {
                "()": HealthCheckFilter
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "access": {
                "format": "%(message)s"
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout"
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
                "filters": ["health_check_filter"]
            }
        },
        "loggers": {
            "uvicorn": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False
            },
            "uvicorn.error": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False
            },
            "uvicorn.access": {
                "handlers": ["access"],
                "level": "INFO",
                "propagate": False
            },
            "qcap_registry": {
                "handlers": ["default"],
                "level": level,
                "propagate": False
            }
        },
        "root": {
            "level": "INFO",
            "handlers": ["default"]
        }
    }


def configure_logging(level: str = "INFO") -> None:
    """Apply the logging configuration to the running process."""
    logging.config.dictConfig(get_logging_config(level))
