"""服务监控相关的数据模型"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, FrozenSet, Iterable, Tuple


def utc_now() -> datetime:
    """当前UTC时间"""
    return datetime.now(timezone.utc)


class CheckStatus(str, Enum):
    """单次检查的结果状态"""
    UP = 'UP'
    DOWN = 'DOWN'
    ERROR = 'ERROR'


class EventKind(str, Enum):
    """通知事件类型，STATUS_CHANGE 匹配所有 UP/DOWN 事件"""
    SERVICE_DOWN = 'SERVICE_DOWN'
    SERVICE_UP = 'SERVICE_UP'
    VERSION_CHANGE = 'VERSION_CHANGE'
    STATUS_CHANGE = 'STATUS_CHANGE'


class ChannelType(str, Enum):
    """通知渠道类型"""
    WEBHOOK = 'WEBHOOK'
    TELEGRAM = 'TELEGRAM'


@dataclass(frozen=True)
class Service:
    """被监控的服务"""
    id: str
    name: str
    url: str
    expected_version: Optional[str] = None
    environment: Optional[str] = None
    depends_on: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LastCheck:
    """服务最近一次检查结果中用于状态比较的部分"""
    status: CheckStatus
    detected_version: Optional[str] = None


@dataclass
class ServiceSnapshot:
    """轮询周期开始时加载的服务及其上一次检查结果"""
    service: Service
    last_check: Optional[LastCheck] = None


@dataclass
class CheckResult:
    """单次检查结果，只追加不修改"""
    service_id: str
    status: CheckStatus
    latency: Optional[int] = None  # 毫秒
    detected_version: Optional[str] = None
    error_message: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_last_check(self) -> LastCheck:
        return LastCheck(status=self.status, detected_version=self.detected_version)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'service_id': self.service_id,
            'status': self.status.value,
            'latency': self.latency,
            'detected_version': self.detected_version,
            'error_message': self.error_message,
            'timestamp': self.timestamp.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CheckResult':
        return cls(
            service_id=data['service_id'],
            status=CheckStatus(data['status']),
            latency=data.get('latency'),
            detected_version=data.get('detected_version'),
            error_message=data.get('error_message'),
            timestamp=datetime.fromisoformat(data['timestamp'])
        )


@dataclass
class NotificationChannel:
    """通知渠道（Webhook 或 Telegram 机器人）"""
    id: str
    name: str
    type: ChannelType
    enabled: bool = True
    events: FrozenSet[EventKind] = field(default_factory=frozenset)
    url: Optional[str] = None  # WEBHOOK
    config: Dict[str, Any] = field(default_factory=dict)  # TELEGRAM: token, chat_id

    def is_interested(self, candidates: Iterable[EventKind]) -> bool:
        """
        判断渠道是否关注给定的事件集合

        Args:
            candidates: 候选事件集合

        Returns:
            bool: 渠道启用且订阅事件与候选集合有交集
        """
        if not self.enabled:
            return False
        return not self.events.isdisjoint(candidates)


@dataclass
class StatusEvent:
    """状态变化事件"""
    kind: EventKind
    previous_status: CheckStatus
    current_status: CheckStatus
    previous_version: Optional[str] = None
    current_version: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def interest_set(self) -> FrozenSet[EventKind]:
        """
        获取会被该事件触发的订阅集合

        Returns:
            FrozenSet[EventKind]: 事件本身，UP/DOWN 事件额外包含 STATUS_CHANGE
        """
        if self.kind in (EventKind.SERVICE_UP, EventKind.SERVICE_DOWN):
            return frozenset({self.kind, EventKind.STATUS_CHANGE})
        return frozenset({self.kind})
