import logging
import os
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request
from config.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(request_line)s case=%(case_id)s] %(message)s'


class RequestContextFilter(logging.Filter):
    """Stamp records with the request being served and the case it targets"""

    def filter(self, record):
        if has_request_context():
            record.request_line = f"{request.method} {request.path}"
            record.case_id = (request.view_args or {}).get('case_id') or '-'
        else:
            record.request_line = '-'
            record.case_id = '-'
        return True


def setup_logger(name='casedesk'):
    """Set up application logger with file and console handlers"""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, Config.LOG_LEVEL))

    if logger.handlers:
        return logger

    log_dir = os.path.dirname(Config.LOG_FILE)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir)

    file_handler = RotatingFileHandler(Config.LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=5)
    file_handler.setLevel(logging.INFO)

    # Console shows everything the level allows
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    context = RequestContextFilter()
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        handler.addFilter(context)
        logger.addHandler(handler)

    return logger


def get_logger(name=None):
    """Get a logger under the casedesk namespace"""
    if name and not name.startswith('casedesk'):
        name = f'casedesk.{name}'
    return logging.getLogger(name or 'casedesk')


logger = setup_logger()
