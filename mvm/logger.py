"""
Logging setup
"""
import logging
import os

from .config import BaseConfig


def setup_logging(log_dir=None, level=None):
    """Configure root logging to stderr and, optionally, to <log_dir>/mvm.log"""
    handlers = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(log_dir, 'mvm.log')))

    logging.basicConfig(
        level=(level or BaseConfig.LOG_LEVEL).upper(),
        format=BaseConfig.LOG_FORMAT,
        handlers=handlers,
        force=True
    )
    return logging.getLogger('mvm')
