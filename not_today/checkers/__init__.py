"""服务检查器模块"""

from .http_checker import HttpChecker, USER_AGENT, DEFAULT_TIMEOUT
from .version import detect_version

__all__ = ['HttpChecker', 'USER_AGENT', 'DEFAULT_TIMEOUT', 'detect_version']
