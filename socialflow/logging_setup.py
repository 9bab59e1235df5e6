# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

import logging
import sys
import contextvars
from datetime import datetime, timezone
from pythonjsonlogger import jsonlogger
from .config import get_settings

request_id_var = contextvars.ContextVar("request_id", default=None)

# Secrets to redact
SECRETS = ["token", "secret", "password", "key", "authorization", "cookie"]

class RedactingJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            now = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')
            log_record['timestamp'] = now

        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname

        req_id = request_id_var.get()
        if req_id:
            log_record["request_id"] = req_id

        log_record["environment"] = get_settings().environment
        log_record["service_name"] = "socialflow-dashboard"

        # Redact secrets; cache keys are tuples of slugs, not credentials
        for key, value in list(log_record.items()):
            if key == "cache_key":
                continue
            if any(s in key.lower() for s in SECRETS) and isinstance(value, str):
                log_record[key] = "***REDACTED***"

def setup_logging(level: str | None = None):
    logger = logging.getLogger()
    logger.setLevel((level or get_settings().log_level).upper())

    # Clean up any existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = RedactingJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Tone down noisy access logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

def log_event(event: str, level: str = "info", **fields):
    """Helper method to log structured JSON events cleanly."""
    logger = logging.getLogger("socialflow")
    fields["event"] = event

    msg_fields = {k: v for k,v in fields.items() if v is not None}

    if level.lower() == "debug":
        logger.debug(event, extra=msg_fields)
    elif level.lower() == "warning":
        logger.warning(event, extra=msg_fields)
    elif level.lower() == "error":
        logger.error(event, extra=msg_fields)
    else:
        logger.info(event, extra=msg_fields)
