import logging
import logging.config
import os
import yaml
import json
from datetime import datetime, timezone
from typing import Dict, Any, Optional

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'taskName', 'getMessage',
    'exc_info', 'exc_text', 'stack_info', 'message', 'asctime', 'component',
}

class JsonFormatter(logging.Formatter):
    """JSON formatter with structured fields"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "component": getattr(record, 'component', 'worker')
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)

def default_config(log_level: str, log_format: str) -> Dict[str, Any]:
    """Logging configuration used when no LOGGING.yaml is present"""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": JsonFormatter},
            "text": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": log_format,
                "stream": "ext://sys.stdout"
            }
        },
        "loggers": {
            "uvicorn": {"level": log_level, "handlers": [], "propagate": True},
            "uvicorn.error": {"level": log_level, "handlers": [], "propagate": True},
            "uvicorn.access": {"level": "WARNING", "handlers": [], "propagate": True}
        },
        "root": {
            "level": log_level,
            "handlers": ["console"]
        }
    }

def setup_logging(config_path: str = "LOGGING.yaml") -> Dict[str, Any]:
    """Setup logging configuration from YAML file or environment"""
    log_format = os.getenv("LOG_FORMAT", "json")
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    if log_format not in ("json", "text"):
        log_format = "json"

    config: Optional[Dict[str, Any]] = None
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: Could not load {config_path}: {e}")

    if not config:
        config = default_config(log_level, log_format)
    else:
        # Environment still wins over the file for level and format
        if "LOG_FORMAT" in os.environ:
            for handler in config.get("handlers", {}).values():
                if "formatter" in handler:
                    handler["formatter"] = log_format
        for logger in config.get("loggers", {}).values():
            logger["level"] = log_level

    logging.config.dictConfig(config)
    return config
