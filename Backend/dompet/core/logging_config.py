import logging
import sys
import os
import re
from logging.handlers import RotatingFileHandler

from dompet.core.config import get_settings

# Secrets and PII that must never reach log files
SENSITIVE_PATTERNS = {
    'BEARER': re.compile(r'(?i)bearer\s+[A-Za-z0-9._\-]+'),
    'ACCESS_TOKEN': re.compile(r'ya29\.[A-Za-z0-9._\-]+'),
    'REFRESH_TOKEN': re.compile(r'1//[A-Za-z0-9._\-]+'),
    'EMAIL': re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'),
    'ACCOUNT': re.compile(r'\b\d{10,19}\b'),
}


class SanitizingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for label, pattern in SENSITIVE_PATTERNS.items():
            message = pattern.sub(f'<{label}>', message)
        return message


def setup_logging():
    settings = get_settings()
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    formatter = SanitizingFormatter(log_format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    # File logging only for local runs; hosted containers have read-only or ephemeral disks
    if settings.ENVIRONMENT == "local":
        log_dir = "logs"
        if not os.path.exists(log_dir):
            os.makedirs(log_dir)

        log_file = os.path.join(log_dir, "app.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=5*1024*1024, backupCount=5)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)

    logging.basicConfig(
        level=logging.INFO,
        handlers=handlers
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


logger = logging.getLogger("dompet")
