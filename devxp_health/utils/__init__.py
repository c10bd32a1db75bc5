"""工具模块"""

from .exceptions import (HealthMonitorError, ConfigError, CheckerError, StoreError,
                         StoreUnavailableError, ServiceNotFoundError, ValidationError,
                         SchedulerError)
from .log_manager import LogManager, LogLevel, get_logger, configure_logging, log_manager

__all__ = [
    'HealthMonitorError', 'ConfigError', 'CheckerError', 'StoreError',
    'StoreUnavailableError', 'ServiceNotFoundError', 'ValidationError', 'SchedulerError',
    'LogManager', 'LogLevel', 'get_logger', 'configure_logging', 'log_manager'
]
