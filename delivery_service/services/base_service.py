from abc import ABC
from typing import Optional

from delivery_service.core.logging import ContextLogger, LogBuffer, get_logger


class BaseService(ABC):
    """Base service class with common functionality."""

    def __init__(self, logger: Optional[ContextLogger] = None, log_buffer: Optional[LogBuffer] = None):
        # Injected loggers keep their own buffer; otherwise one is created per class
        self.logger = logger or get_logger(self.__class__.__name__, buffer=log_buffer)

    @property
    def log_buffer(self) -> Optional[LogBuffer]:
        return self.logger.buffer
