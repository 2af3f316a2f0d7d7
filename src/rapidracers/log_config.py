import json
import logging
import sys

from flask import g

from rapidracers import settings

LOGGER_NAME = 'RapidRacers'


class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "lineno": record.lineno,
        }
        # include request id if present
        if hasattr(record, 'request_info'):
            log_record['request_info'] = dict(record.request_info)
        if hasattr(record, 'request_id') and record.request_id:
            log_record['request_id'] = record.request_id
        if record.exc_info:
            log_record['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(log_record, default=str)


class RequestIDFilter(logging.Filter):
    def filter(self, record):
        try:
            record.request_id = getattr(g, 'request_id', None)
        except RuntimeError:
            # outside of an application context
            record.request_id = None
        return True


def configure_logging(level=None):
    """Send JSON logs to stdout so Cloud Run / GCP logging picks them up.

    Returns the application logger. Safe to call more than once.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestIDFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers = [handler]

    # Make werkzeug and the Google HTTP stack use the same handler
    for name in ('werkzeug', 'urllib3.connectionpool'):
        logging.getLogger(name).handlers = [handler]
        logging.getLogger(name).setLevel(logging.INFO)
        logging.getLogger(name).propagate = False

    return logger
