"""
Logging configuration for the social media API
"""
import logging
import os


def setup_logger(name, level=None):
    """Setup logger with consistent formatting"""
    if level is None:
        level = os.environ.get('LOG_LEVEL') or (
            logging.DEBUG if os.environ.get('FLASK_ENV') == 'development' else logging.INFO
        )

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Prevent duplicate handlers
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)

    return logger


def log_user_action(logger, user_id, action, details=None):
    """Log user actions for audit trail"""
    log_msg = f"User {user_id} performed: {action}"
    if details:
        log_msg += f" | Details: {details}"
    logger.info(log_msg)
