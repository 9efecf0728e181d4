import logging
import json
import uuid
import sys

from flask import request, has_request_context, g

from utils.redaction import mask_ip
from utils.timestamps import utc_now

# Loggers whose records should reach the same JSON handler as app.logger
SERVICE_LOGGERS = ("services", "utils", "database", "werkzeug")


class JSONFormatter(logging.Formatter):
    """
    Formatter to output logs in JSON format.
    Includes request_id if available in Flask context. Client addresses
    are masked; share tokens never reach log records.
    """
    def format(self, record):
        log_record = {
            "timestamp": utc_now().isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "lineno": record.lineno,
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        if has_request_context():
            log_record["method"] = request.method
            log_record["path"] = request.path
            log_record["remote_ip"] = mask_ip(request.remote_addr)
            if hasattr(g, "request_id"):
                log_record["request_id"] = g.request_id

        return json.dumps(log_record)


def setup_logger(app):
    """
    Configures the application logger to use JSON formatting
    and output to stdout (for container logging).
    """
    app.logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

    app.logger.addHandler(handler)
    app.logger.setLevel(logging.INFO)

    # Module loggers (logging.getLogger(__name__)) share the handler
    for name in SERVICE_LOGGERS:
        module_logger = logging.getLogger(name)
        module_logger.handlers = [handler]
        module_logger.setLevel(logging.INFO)
        module_logger.propagate = False

    # Setup Gunicorn logger binding if running under Gunicorn
    gunicorn_logger = logging.getLogger('gunicorn.error')
    if gunicorn_logger.handlers:
        app.logger.handlers = gunicorn_logger.handlers
        app.logger.setLevel(gunicorn_logger.level)

    @app.before_request
    def add_request_id():
        g.request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))

    @app.after_request
    def echo_request_id(response):
        if hasattr(g, "request_id"):
            response.headers["X-Request-Id"] = g.request_id
        return response

    app.logger.info("Logger setup complete. JSON formatted logs enabled.")
