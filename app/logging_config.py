"""
Structured logging configuration.

Every process of the engine sets logging up the same way: the web app from
create_app(), RQ workers from their job entry points, and the scripts from
main(). Each names its process role, which is stamped on every line so the
interleaved output of web, worker and ticker processes can be told apart.

LOG_LEVEL and LOG_FORMAT ("text" or "json") come from app.config.
"""
import json
import logging
import sys
from datetime import datetime, timezone

from app import config

# Set once this process has configured logging
_configured = False


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def __init__(self, process='web'):
        super().__init__()
        self.process = process

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'process': self.process,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    'urllib3',
    'botocore',
    'boto3',
    'openai',
    'httpcore',
    'httpx',
    'rq.worker',
]


def configure_logging(app=None, process='web', level=None, fmt=None):
    """
    Set up the root logger for this process. Repeated calls replace the
    root handler rather than adding another one.

    `level` and `fmt` override LOG_LEVEL / LOG_FORMAT.
    """
    global _configured
    level_name = (level or config.LOG_LEVEL or 'INFO').upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = (fmt or config.LOG_FORMAT or 'text').lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if log_format == 'json':
        handler.setFormatter(JSONFormatter(process))
    else:
        handler.setFormatter(logging.Formatter(
            f'[%(asctime)s] %(levelname)s {process} %(name)s — %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.setLevel(level)
    _configured = True


def ensure_logging(process):
    """configure_logging() unless this process has already done it."""
    if not _configured:
        configure_logging(process=process)
