"""通知模块"""

from .dispatcher import NotificationDispatcher
from .telegram import TelegramSender, format_telegram_message
from .webhook import WebhookSender, build_webhook_payload, WEBHOOK_USER_AGENT

__all__ = [
    'NotificationDispatcher',
    'WebhookSender',
    'TelegramSender',
    'build_webhook_payload',
    'format_telegram_message',
    'WEBHOOK_USER_AGENT'
]
