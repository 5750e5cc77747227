"""
Base service classes.
Services contain business logic and orchestrate between repositories.
"""
from django.conf import settings
import logging

logger = logging.getLogger(__name__)


class BaseService:
    """
    Base service class providing common functionality.
    Services should contain business logic and use repositories for data access.
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    def log_info(self, message: str, **context):
        """Log info message with context"""
        self.logger.info(f"{message} | Context: {context}")

    def log_warning(self, message: str, **context):
        """Log warning message with context"""
        self.logger.warning(f"{message} | Context: {context}")

    def log_error(self, message: str, error: Exception = None, **context):
        """Log error message with context"""
        if error:
            self.logger.error(f"{message} | Context: {context}", exc_info=error)
        else:
            self.logger.error(f"{message} | Context: {context}")


def get_setting(group: str, key: str, default=None):
    """Read a key from a settings dict such as BILLING or GATEWAY"""
    return getattr(settings, group, {}).get(key, default)
