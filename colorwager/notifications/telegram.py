"""Telegram operational alerts."""

from __future__ import annotations

import logging

import httpx

from colorwager.config import settings

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"


def _post(url: str, payload: dict) -> None:
    resp = httpx.post(url, json=payload, timeout=10)
    resp.raise_for_status()


def send_message(text: str, parse_mode: str = "Markdown") -> bool:
    """Send a message via the Telegram bot API. Returns True on success.

    Falls back to plain text if Markdown parsing fails (HTTP 400).
    """
    if not settings.telegram_bot_token or not settings.telegram_chat_id:
        logger.warning("Telegram not configured, skipping notification")
        return False

    url = TELEGRAM_API.format(token=settings.telegram_bot_token)
    payload = {"chat_id": settings.telegram_chat_id, "text": text}

    try:
        _post(url, {**payload, "parse_mode": parse_mode} if parse_mode else payload)
        return True
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 400 and parse_mode:
            # Markdown パース失敗 → plain text で再送
            logger.warning("Telegram Markdown parse failed, retrying as plain text")
            try:
                _post(url, payload)
                return True
            except httpx.HTTPError:
                logger.exception("Telegram plain text fallback also failed")
                return False
        logger.error("Telegram HTTP error %d: %s", e.response.status_code, e)
        return False
    except httpx.TimeoutException:
        logger.warning("Telegram request timed out")
        return False
    except httpx.HTTPError:
        logger.exception("Failed to send Telegram message")
        return False


def send_error_alert(error_type: str, message: str) -> bool:
    """Send an error notification (stuck completion, store outage)."""
    text = f"*Error: {error_type}*\n{message}"
    return send_message(text)


def send_health_alert(messages: list[str]) -> bool:
    """Send health check failure notification."""
    text = "*Health Check Alert*\n" + "\n".join(f"- {m}" for m in messages)
    return send_message(text)


def format_round_summary(round_, summary) -> str:
    """Telegram text for a completed round and its SettleSummary."""
    lines = [f"*Round #{round_.sequence_number} completed* ({round_.mode})"]
    if round_.result is not None:
        lines.append(f"Result: {round_.result.color.value} {round_.result.number}")
    lines.append(f"Control: {round_.control.value}")
    if summary.settled:
        lines.append(
            f"Bets: {len(summary.settled)} | W/L: {summary.wins}/{summary.losses}"
        )
        lines.append(
            f"Stake: {summary.total_stake:.2f} | Payout: {summary.total_payout:.2f}"
        )
    else:
        lines.append("No bets")
    return "\n".join(lines)
