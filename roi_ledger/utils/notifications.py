"""Operator alerts (Telegram)."""

import logging
from typing import Optional

import httpx

from roi_ledger.config import settings

logger = logging.getLogger(__name__)


def format_tiered_message(tier: str, title: str, body: str) -> str:
    tier_u = (tier or "INFO").upper()
    if tier_u not in ("INFO", "PAYOUT", "ALERT"):
        tier_u = "INFO"
    return f"[{tier_u}] {title}\n\n{body}".strip()


async def send_telegram_message(text: str) -> bool:
    """Send a Telegram message if alerts are enabled and bot token + chat ID are configured."""
    if not settings.TELEGRAM_ENABLED:
        logger.debug("Telegram alert skipped (TELEGRAM_ENABLED is off)")
        return False

    token = settings.TELEGRAM_BOT_TOKEN
    chat_id = settings.TELEGRAM_CHAT_ID
    if not token or not chat_id:
        logger.info("Telegram alert skipped (missing TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID)")
        return False

    url = f"https://api.telegram.org/bot{token}/sendMessage"
    payload = {"chat_id": chat_id, "text": text}

    try:
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()
        return True
    except Exception as exc:
        logger.error(f"Telegram alert failed: {exc}")
        return False


async def send_tiered_telegram_message(
    tier: str,
    title: str,
    body: str,
    extra_text: Optional[str] = None,
) -> bool:
    text = format_tiered_message(tier=tier, title=title, body=body)
    if extra_text:
        text = f"{text}\n\n{extra_text}"
    return await send_telegram_message(text)
