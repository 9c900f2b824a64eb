# Overview: Fire-and-forget notification sink (Telegram Bot API when configured, log otherwise).

from __future__ import annotations

import httpx
from flask import current_app


TELEGRAM_API_URL = "https://api.telegram.org/bot"


def send_notification(message: str) -> bool:
    """
    Deliver a text message to the operators' channel.

    Never raises: delivery problems are logged and reported as False so a
    batch result is never affected by the notification channel.
    """
    token = current_app.config.get("TELEGRAM_BOT_TOKEN")
    chat_id = current_app.config.get("TELEGRAM_CHAT_ID")

    if not token or not chat_id:
        current_app.logger.info("Notification (sink not configured): %s", message)
        return False

    try:
        response = httpx.post(
            f"{TELEGRAM_API_URL}{token}/sendMessage",
            json={
                "chat_id": chat_id,
                "text": message,
                "parse_mode": "Markdown",
                "disable_web_page_preview": True,
            },
            timeout=current_app.config.get("TELEGRAM_TIMEOUT_SECONDS", 10),
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        current_app.logger.error("Failed to send notification: %s", exc.__class__.__name__)
        return False

    return True
