"""工具模块"""

from .exceptions import (NotTodayError, ConfigError, NotificationError,
                         NotificationConfigError, NotificationSendError,
                         SchedulerError, PollCycleError, StoreError)
from .log_manager import LogManager, LogLevel, get_logger, log_manager

__all__ = [
    'NotTodayError', 'ConfigError', 'NotificationError', 'NotificationConfigError',
    'NotificationSendError', 'SchedulerError', 'PollCycleError', 'StoreError',
    'LogManager', 'LogLevel', 'get_logger', 'log_manager'
]
