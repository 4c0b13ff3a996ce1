"""
Notification Dispatch

Delivers alert matches to subscribers via the Telegram Bot API, or to the
log when no transport is configured. Dispatchers report failure by returning
False; they never raise.
"""
from typing import Any, Callable, Dict, Optional, Protocol

import requests

from config.settings import settings
from src.dxbdata.utils.logger import get_logger

logger = get_logger(__name__)

ChatResolver = Callable[[Any], Optional[str]]


class Notifier(Protocol):
    """Delivers one alert match to one subscriber."""

    def notify(self, subscriber_ref: Any, payload: Dict[str, Any]) -> bool:
        ...


def _format_amount(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"AED {value:,.0f}"


def format_alert_message(payload: Dict[str, Any]) -> str:
    """
    Format an alert match into a notification message.

    Args:
        payload: Alert match payload (alert fields plus the matched record)

    Returns:
        Formatted message string
    """
    record = payload.get("record", {})
    title = payload.get("alert_name") or f"Alert #{payload.get('alert_id')}"
    location = ", ".join(
        part for part in (record.get("building_name"), record.get("area_name")) if part
    ) or "Unknown location"

    message_lines = [
        f"*{title}* matched a new transaction",
        "",
        f"{location}",
        f"Date: {record.get('event_date', 'n/a')}",
        f"Price: {_format_amount(record.get('amount'))}",
    ]
    if record.get("unit_price") is not None:
        message_lines.append(f"Price/sqm: {_format_amount(record['unit_price'])}")
    if record.get("size_sqm") is not None:
        message_lines.append(f"Size: {record['size_sqm']:,.1f} sqm")
    if record.get("rooms"):
        message_lines.append(f"Rooms: {record['rooms']}")
    if payload.get("threshold") is not None:
        message_lines.append("")
        message_lines.append(f"Rule: {payload.get('kind')} {_format_amount(payload['threshold'])}")

    return "\n".join(message_lines)


class TelegramNotifier:
    """
    Sends alert matches through the Telegram Bot API.

    Disabled unless settings.alert_enable_telegram is set and a bot token is
    configured. The subscriber reference is resolved to a chat id by
    chat_resolver; by default the reference itself is the chat id.
    """

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_resolver: Optional[ChatResolver] = None,
    ):
        self.bot_token = bot_token
        self.chat_resolver = chat_resolver

    def _chat_id(self, subscriber_ref: Any) -> Optional[str]:
        if self.chat_resolver is not None:
            return self.chat_resolver(subscriber_ref)
        return str(subscriber_ref) if subscriber_ref is not None else None

    def notify(self, subscriber_ref: Any, payload: Dict[str, Any]) -> bool:
        """
        Send one alert match.

        Returns:
            True if Telegram accepted the message, False otherwise
        """
        if not settings.alert_enable_telegram:
            logger.info("telegram_notifications_disabled")
            return False

        bot_token = self.bot_token or settings.telegram_bot_token
        if not bot_token:
            logger.warning("telegram_bot_token_not_configured")
            return False

        chat_id = self._chat_id(subscriber_ref)
        if not chat_id:
            logger.warning("telegram_chat_not_linked", subscriber=subscriber_ref)
            return False

        url = f"{settings.telegram_api_base}/bot{bot_token}/sendMessage"
        try:
            response = requests.post(
                url,
                json={
                    "chat_id": chat_id,
                    "text": format_alert_message(payload),
                    "parse_mode": "Markdown",
                },
                timeout=settings.telegram_timeout_seconds,
            )

            if response.status_code == 200:
                logger.info("telegram_notification_sent", alert_id=payload.get("alert_id"))
                return True
            else:
                logger.error("telegram_notification_failed",
                             status_code=response.status_code,
                             response=response.text)
                return False

        except Exception as e:
            logger.error("telegram_notification_error", error=str(e), error_type=type(e).__name__)
            return False


class LogNotifier:
    """Writes alert matches to the log; used when no transport is enabled."""

    def notify(self, subscriber_ref: Any, payload: Dict[str, Any]) -> bool:
        logger.info(
            "alert_match",
            subscriber=subscriber_ref,
            alert_id=payload.get("alert_id"),
            record_id=payload.get("record", {}).get("record_id"),
        )
        return True


def default_notifier() -> Notifier:
    """Telegram when enabled in settings, the log otherwise."""
    if settings.alert_enable_telegram:
        return TelegramNotifier()
    return LogNotifier()
