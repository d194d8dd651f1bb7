"""通知分发器

根据事件找出关注该事件的启用渠道，并发地向每个渠道投递消息。
单个渠道的失败只记录日志，不影响其他渠道，也不会抛给调用方。
"""

import asyncio
from typing import Awaitable, Callable, Dict, List

import aiohttp

from .telegram import TelegramSender, format_telegram_message
from .webhook import WebhookSender, build_webhook_payload
from ..models.monitoring import ChannelType, NotificationChannel, Service, StatusEvent
from ..services.stores import ChannelStore
from ..utils.exceptions import NotificationConfigError
from ..utils.log_manager import get_logger

DEFAULT_DELIVERY_TIMEOUT = 30

DeliveryStrategy = Callable[
    [aiohttp.ClientSession, NotificationChannel, Service, StatusEvent], Awaitable[bool]]


class NotificationDispatcher:
    """通知分发器"""

    def __init__(self, channel_store: ChannelStore,
                 timeout: float = DEFAULT_DELIVERY_TIMEOUT):
        """
        初始化通知分发器

        Args:
            channel_store: 通知渠道存储
            timeout: 单次投递的超时时间（秒）
        """
        self.channel_store = channel_store
        self.timeout = timeout
        self.webhook_sender = WebhookSender()
        self.telegram_sender = TelegramSender()
        self.logger = get_logger('notifications.dispatcher')

        self._strategies: Dict[ChannelType, DeliveryStrategy] = {
            ChannelType.WEBHOOK: self._deliver_webhook,
            ChannelType.TELEGRAM: self._deliver_telegram,
        }

    def _new_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def _deliver_webhook(self, session: aiohttp.ClientSession,
                               channel: NotificationChannel, service: Service,
                               event: StatusEvent) -> bool:
        return await self.webhook_sender.send(
            session, channel, build_webhook_payload(service, event))

    async def _deliver_telegram(self, session: aiohttp.ClientSession,
                                channel: NotificationChannel, service: Service,
                                event: StatusEvent) -> bool:
        return await self.telegram_sender.send(
            session, channel, format_telegram_message(service, event))

    async def dispatch(self, service: Service, event: StatusEvent) -> None:
        """
        分发状态变化事件

        Args:
            service: 服务
            event: 状态变化事件
        """
        candidates = event.interest_set()

        try:
            channels = await self.channel_store.list_enabled_channels()
        except Exception as e:
            self.logger.error(f"加载通知渠道失败: {e}", exc_info=True)
            return

        matched = [channel for channel in channels if channel.is_interested(candidates)]
        if not matched:
            return

        self.logger.info(
            f"发送 {len(matched)} 条通知: 服务={service.name}, 事件={event.kind.value}")

        try:
            async with self._new_session() as session:
                results = await asyncio.gather(
                    *(self._deliver(session, channel, service, event) for channel in matched)
                )
        except Exception as e:
            self.logger.error(f"通知分发异常 (服务: {service.name}): {e}", exc_info=True)
            return

        self._log_send_results(matched, results, service, event)

    async def _deliver(self, session: aiohttp.ClientSession, channel: NotificationChannel,
                       service: Service, event: StatusEvent) -> bool:
        """
        向单个渠道投递，异常在此处截获

        Returns:
            bool: 是否投递成功
        """
        strategy = self._strategies.get(channel.type)
        if strategy is None:
            self.logger.warning(f"通知渠道 {channel.name} 的类型不受支持: {channel.type}")
            return False

        try:
            return await strategy(session, channel, service, event)
        except Exception as e:
            self.logger.error(f"通知渠道 {channel.name} 发送失败: {e}")
            return False

    def _log_send_results(self, channels: List[NotificationChannel], results: List[bool],
                          service: Service, event: StatusEvent):
        failed = [channel.name for channel, ok in zip(channels, results) if not ok]
        success_count = len(results) - len(failed)

        if success_count > 0:
            self.logger.info(
                f"通知发送成功 {success_count}/{len(results)} 个渠道 "
                f"(服务: {service.name}, 事件: {event.kind.value})"
            )

        if failed:
            self.logger.warning(
                f"以下通知渠道发送失败: {', '.join(failed)} (服务: {service.name})")

    async def send_test_notification(self, channel: NotificationChannel) -> None:
        """
        向指定渠道发送测试通知

        Args:
            channel: 通知渠道

        Raises:
            NotificationConfigError: 渠道类型不受支持或配置无效
            NotificationSendError: 发送失败
        """
        if channel.type == ChannelType.WEBHOOK:
            sender = self.webhook_sender
        elif channel.type == ChannelType.TELEGRAM:
            sender = self.telegram_sender
        else:
            raise NotificationConfigError(
                f"通知渠道 {channel.name} 的类型不受支持: {channel.type}",
                channel_name=channel.name)

        async with self._new_session() as session:
            await sender.send_test(session, channel)

        self.logger.info(f"测试通知已发送到渠道 {channel.name}")
