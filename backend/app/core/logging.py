"""Logging configuration for the application"""
import logging

from app.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that only matter when something goes wrong
QUIET_LIBRARIES = ("urllib3", "httpx", "httpcore", "botocore", "boto3", "s3transfer", "multipart")


def setup_logging(level: str = None):
    """Configure root logging once at startup

    Args:
        level: Overrides LOG_LEVEL from the settings
    """
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S', force=True)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    # One line per request is too chatty outside development
    if settings.ENVIRONMENT == "production":
        logging.getLogger("api_access").setLevel(logging.WARNING)
