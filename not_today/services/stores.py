"""存储协作方接口

轮询核心只通过这两个接口读写服务、检查结果和通知渠道。
"""

from abc import ABC, abstractmethod
from typing import List

from ..models.monitoring import CheckResult, NotificationChannel, ServiceSnapshot


class ServiceStore(ABC):
    """服务与检查结果存储"""

    @abstractmethod
    async def list_services_with_last_check(self) -> List[ServiceSnapshot]:
        """
        加载所有服务及其最近一次检查结果

        Returns:
            List[ServiceSnapshot]: 服务快照列表
        """
        pass

    @abstractmethod
    async def create_check_result(self, result: CheckResult) -> None:
        """
        追加一条检查结果

        Args:
            result: 检查结果

        Raises:
            StoreError: 持久化失败
        """
        pass


class ChannelStore(ABC):
    """通知渠道存储（只读）"""

    @abstractmethod
    async def list_enabled_channels(self) -> List[NotificationChannel]:
        """
        获取所有启用的通知渠道

        Returns:
            List[NotificationChannel]: 启用的通知渠道
        """
        pass
