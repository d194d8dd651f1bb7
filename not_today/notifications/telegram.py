"""Telegram机器人通知发送"""

import asyncio
from typing import Tuple

import aiohttp

from ..models.monitoring import EventKind, NotificationChannel, Service, StatusEvent
from ..utils.exceptions import NotificationConfigError, NotificationSendError
from ..utils.log_manager import get_logger

TELEGRAM_API_BASE = 'https://api.telegram.org'
TEST_MESSAGE = '🔔 *Test Notification*\n\nThis is a test message from 404 Not Today.'


def format_telegram_message(service: Service, event: StatusEvent) -> str:
    """
    根据事件类型生成Markdown消息

    Args:
        service: 服务
        event: 状态变化事件

    Returns:
        str: 消息文本
    """
    if event.kind == EventKind.SERVICE_DOWN:
        return (f"🚨 *Service Down*\n\n*Service:* {service.name}\n"
                f"*URL:* {service.url}\n*Status:* DOWN 🔴")

    if event.kind == EventKind.SERVICE_UP:
        return (f"✅ *Service Recovered*\n\n*Service:* {service.name}\n"
                f"*URL:* {service.url}\n*Status:* UP 🟢")

    if event.kind == EventKind.VERSION_CHANGE:
        return (f"ℹ️ *Version Change*\n\n*Service:* {service.name}\n"
                f"*From:* {event.previous_version or 'Unknown'}\n"
                f"*To:* {event.current_version or 'Unknown'}")

    return (f"📢 *Status Change*\n\n*Service:* {service.name}\n"
            f"*Event:* {event.kind.value}\n*Status:* {event.current_status.value}")


class TelegramSender:
    """通过 Bot API 的 sendMessage 发送消息"""

    def __init__(self, api_base: str = TELEGRAM_API_BASE):
        self.api_base = api_base.rstrip('/')
        self.logger = get_logger('notifications.telegram')

    @staticmethod
    def _credentials(channel: NotificationChannel) -> Tuple[str, str]:
        token = channel.config.get('token')
        chat_id = channel.config.get('chat_id')
        if not token or not chat_id:
            raise NotificationConfigError(
                f"Telegram渠道 {channel.name} 缺少token或chat_id配置",
                channel_name=channel.name)
        return str(token), str(chat_id)

    def get_send_url(self, token: str) -> str:
        return f"{self.api_base}/bot{token}/sendMessage"

    async def _post_message(self, session: aiohttp.ClientSession,
                            channel: NotificationChannel, text: str) -> Tuple[bool, str]:
        """
        调用sendMessage

        Returns:
            (是否成功, 失败时的响应内容)

        Raises:
            NotificationConfigError: 缺少token或chat_id
            NotificationSendError: 网络错误或超时
        """
        token, chat_id = self._credentials(channel)
        body = {
            'chat_id': chat_id,
            'text': text,
            'parse_mode': 'Markdown',
        }

        try:
            async with session.post(self.get_send_url(token), json=body) as response:
                if 200 <= response.status < 300:
                    return True, ''
                return False, await response.text()
        except asyncio.TimeoutError as e:
            raise NotificationSendError(
                f"Telegram渠道 {channel.name} 请求超时", channel_name=channel.name, cause=e)
        except aiohttp.ClientError as e:
            # 异常信息中可能包含带token的URL
            raise NotificationSendError(
                f"Telegram渠道 {channel.name} 请求失败: {e.__class__.__name__}",
                channel_name=channel.name, cause=e)

    async def send(self, session: aiohttp.ClientSession, channel: NotificationChannel,
                   text: str) -> bool:
        """
        发送事件消息，非OK响应只记录警告

        Args:
            session: HTTP会话
            channel: Telegram渠道
            text: 消息文本

        Returns:
            bool: 是否发送成功
        """
        ok, response_text = await self._post_message(session, channel, text)
        if ok:
            self.logger.debug(f"Telegram渠道 {channel.name} 发送成功")
            return True

        self.logger.warning(f"Telegram渠道 {channel.name} 发送消息失败: {response_text}")
        return False

    async def send_test(self, session: aiohttp.ClientSession,
                        channel: NotificationChannel) -> None:
        """
        发送测试消息

        Raises:
            NotificationSendError: 发送失败
        """
        ok, response_text = await self._post_message(session, channel, TEST_MESSAGE)
        if not ok:
            raise NotificationSendError(
                f"Telegram API error: {response_text}", channel_name=channel.name)
