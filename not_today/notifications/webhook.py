"""Webhook通知发送"""

import asyncio
from typing import Any, Dict, Tuple

import aiohttp

from ..models.monitoring import NotificationChannel, Service, StatusEvent, utc_now
from ..utils.exceptions import NotificationConfigError, NotificationSendError
from ..utils.log_manager import get_logger

WEBHOOK_USER_AGENT = '404NotToday-Webhook-Bot/1.0'
TEST_EVENT = 'TEST_NOTIFICATION'
TEST_MESSAGE = 'This is a test notification from 404 Not Today.'


def build_webhook_payload(service: Service, event: StatusEvent) -> Dict[str, Any]:
    """
    构建Webhook请求体

    Args:
        service: 服务
        event: 状态变化事件

    Returns:
        Dict[str, Any]: JSON请求体
    """
    return {
        'event': event.kind.value,
        'service': {
            'id': service.id,
            'name': service.name,
            'url': service.url,
        },
        'previousStatus': event.previous_status.value,
        'currentStatus': event.current_status.value,
        'previousVersion': event.previous_version,
        'currentVersion': event.current_version,
        'timestamp': utc_now().isoformat(),
    }


def build_test_payload() -> Dict[str, Any]:
    """构建测试通知请求体"""
    return {
        'event': TEST_EVENT,
        'service': {
            'id': 'test-service-id',
            'name': 'Test Service',
            'url': 'https://example.com',
        },
        'previousStatus': 'UP',
        'currentStatus': 'UP',
        'timestamp': utc_now().isoformat(),
        'message': TEST_MESSAGE,
    }


class WebhookSender:
    """向Webhook地址POST JSON事件"""

    def __init__(self):
        self.logger = get_logger('notifications.webhook')
        self.headers = {
            'Content-Type': 'application/json',
            'User-Agent': WEBHOOK_USER_AGENT,
        }

    @staticmethod
    def validate_channel(channel: NotificationChannel) -> None:
        """
        验证Webhook渠道配置

        Raises:
            NotificationConfigError: 缺少有效URL
        """
        if not channel.url or not channel.url.startswith(('http://', 'https://')):
            raise NotificationConfigError(
                f"Webhook渠道 {channel.name} 缺少有效的URL", channel_name=channel.name)

    async def _post(self, session: aiohttp.ClientSession, channel: NotificationChannel,
                    payload: Dict[str, Any]) -> Tuple[int, str, str]:
        """
        发送POST请求

        Returns:
            (状态码, 状态描述, 非2xx时的响应内容)

        Raises:
            NotificationSendError: 网络错误或超时
        """
        self.validate_channel(channel)

        try:
            async with session.post(channel.url, json=payload, headers=self.headers) as response:
                if 200 <= response.status < 300:
                    return response.status, response.reason or '', ''
                response_text = await response.text()
                return response.status, response.reason or '', response_text
        except asyncio.TimeoutError as e:
            raise NotificationSendError(
                f"Webhook渠道 {channel.name} 请求超时", channel_name=channel.name, cause=e)
        except aiohttp.ClientError as e:
            raise NotificationSendError(
                f"Webhook渠道 {channel.name} 请求失败: {e}", channel_name=channel.name, cause=e)

    async def send(self, session: aiohttp.ClientSession, channel: NotificationChannel,
                   payload: Dict[str, Any]) -> bool:
        """
        发送事件通知，非2xx响应只记录警告

        Args:
            session: HTTP会话
            channel: Webhook渠道
            payload: 请求体

        Returns:
            bool: 是否发送成功
        """
        status, reason, response_text = await self._post(session, channel, payload)

        if 200 <= status < 300:
            self.logger.debug(f"Webhook渠道 {channel.name} 发送成功 (状态码: {status})")
            return True

        self.logger.warning(
            f"Webhook渠道 {channel.name} 发送失败 {channel.url}: "
            f"{status} {reason} (响应: {response_text[:200]})"
        )
        return False

    async def send_test(self, session: aiohttp.ClientSession,
                        channel: NotificationChannel) -> None:
        """
        发送测试通知

        Raises:
            NotificationSendError: 发送失败
        """
        status, reason, _ = await self._post(session, channel, build_test_payload())
        if not 200 <= status < 300:
            raise NotificationSendError(
                f"Webhook responded with {status}: {reason}", channel_name=channel.name)
