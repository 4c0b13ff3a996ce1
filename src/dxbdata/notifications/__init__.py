"""
Notifications Package

Alert match dispatchers.
"""
from src.dxbdata.notifications.telegram import (
    LogNotifier,
    Notifier,
    TelegramNotifier,
    default_notifier,
    format_alert_message,
)

__all__ = [
    "Notifier",
    "TelegramNotifier",
    "LogNotifier",
    "default_notifier",
    "format_alert_message",
]
