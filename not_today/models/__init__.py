"""数据模型模块"""

from .monitoring import (CheckStatus, EventKind, ChannelType, Service, LastCheck,
                         ServiceSnapshot, CheckResult, NotificationChannel, StatusEvent,
                         utc_now)

__all__ = ['CheckStatus', 'EventKind', 'ChannelType', 'Service', 'LastCheck',
           'ServiceSnapshot', 'CheckResult', 'NotificationChannel', 'StatusEvent',
           'utc_now']
