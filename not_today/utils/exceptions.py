"""自定义异常类和错误代码"""

import traceback
from enum import Enum
from typing import Optional, Dict, Any
from datetime import datetime


class ErrorCode(Enum):
    """错误代码枚举"""
    # 通用错误 (1000-1999)
    UNKNOWN_ERROR = 1000

    # 配置错误 (2000-2999)
    CONFIG_FILE_NOT_FOUND = 2000
    CONFIG_PARSE_ERROR = 2001
    CONFIG_VALIDATION_ERROR = 2002
    CONFIG_RELOAD_ERROR = 2003

    # 通知错误 (4000-4999)
    NOTIFICATION_CONFIG_ERROR = 4000
    NOTIFICATION_SEND_ERROR = 4001

    # 调度错误 (5000-5999)
    SCHEDULER_ERROR = 5000
    POLL_CYCLE_ERROR = 5001

    # 存储错误 (6000-6999)
    STORE_ERROR = 6000
    STORE_LOAD_ERROR = 6001
    STORE_PERSISTENCE_ERROR = 6002


class NotTodayError(Exception):
    """监控系统基础异常类"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            'error_code': self.error_code.value,
            'error_name': self.error_code.name,
            'message': self.message,
            'details': self.details,
            'recoverable': self.recoverable,
            'timestamp': self.timestamp.isoformat(),
            'cause': str(self.cause) if self.cause else None,
            'traceback': ''.join(traceback.format_exception(
                type(self.cause), self.cause, self.cause.__traceback__
            )) if self.cause else None
        }

    def format_error(self) -> str:
        """格式化错误信息"""
        error_msg = f"[{self.error_code.name}] {self.message}"
        if self.details:
            details_str = ", ".join([f"{k}={v}" for k, v in self.details.items()])
            error_msg += f" (详情: {details_str})"
        if self.cause:
            error_msg += f" (原因: {str(self.cause)})"
        return error_msg


class ConfigError(NotTodayError):
    """配置相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.CONFIG_VALIDATION_ERROR,
        config_path: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', None) or {}
        if config_path:
            details['config_path'] = config_path
        super().__init__(message, error_code, details, **kwargs)


class NotificationError(NotTodayError):
    """通知相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.NOTIFICATION_SEND_ERROR,
        channel_name: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', None) or {}
        if channel_name:
            details['channel_name'] = channel_name
        super().__init__(message, error_code, details, **kwargs)


class NotificationConfigError(NotificationError):
    """通知渠道配置异常"""

    def __init__(self, message: str, channel_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.NOTIFICATION_CONFIG_ERROR,
            channel_name=channel_name,
            recoverable=False,
            **kwargs
        )


class NotificationSendError(NotificationError):
    """通知发送异常"""

    def __init__(self, message: str, channel_name: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCode.NOTIFICATION_SEND_ERROR,
            channel_name=channel_name,
            recoverable=True,
            **kwargs
        )


class SchedulerError(NotTodayError):
    """调度器相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.SCHEDULER_ERROR,
        **kwargs
    ):
        super().__init__(message, error_code, **kwargs)


class PollCycleError(SchedulerError):
    """轮询周期异常，仅在加载服务列表失败时抛出"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCode.POLL_CYCLE_ERROR, **kwargs)


class StoreError(NotTodayError):
    """存储相关异常"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.STORE_ERROR,
        service_id: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop('details', None) or {}
        if service_id:
            details['service_id'] = service_id
        super().__init__(message, error_code, details, **kwargs)
