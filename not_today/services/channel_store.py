"""基于配置文件的通知渠道存储"""

from typing import Iterable, List, Optional

from .stores import ChannelStore
from ..models.monitoring import NotificationChannel
from ..utils.log_manager import get_logger


class ConfigChannelStore(ChannelStore):
    """通知渠道列表来自配置文件，配置重新加载时整体替换"""

    def __init__(self, channels: Optional[Iterable[NotificationChannel]] = None):
        self.channels: List[NotificationChannel] = list(channels or [])
        self.logger = get_logger('channel_store')

    def replace(self, channels: Iterable[NotificationChannel]) -> None:
        """
        替换全部通知渠道

        Args:
            channels: 新的通知渠道列表
        """
        self.channels = list(channels)
        self.logger.info(f"通知渠道已更新，共 {len(self.channels)} 个")

    async def list_enabled_channels(self) -> List[NotificationChannel]:
        return [channel for channel in self.channels if channel.enabled]
