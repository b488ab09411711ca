"""
Logging setup for the chat and memory services.
"""

import logging
import sys
from typing import Optional

from .config import AppConfig

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Client libraries that log every request at INFO
LIBRARY_LOGGERS = ('botocore', 'boto3', 'urllib3', 'opensearch', 'redis', 'mcp', 'fastmcp')


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def _resolve(config: Optional[AppConfig]) -> AppConfig:
    if config is None:
        from .config import config as default_config
        return default_config
    return config


def setup_logging(config: Optional[AppConfig] = None) -> None:
    """
    Send application logs to stdout and quiet the client libraries.

    Args:
        config: AppConfig instance, uses default if None
    """
    config = _resolve(config)

    logging.basicConfig(level=_level(config.log_level), format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])

    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(_level(config.library_log_level))


def get_logger(name: str, config: Optional[AppConfig] = None) -> logging.Logger:
    """Module logger at the application log level."""
    logger = logging.getLogger(name)
    logger.setLevel(_level(_resolve(config).log_level))
    return logger
