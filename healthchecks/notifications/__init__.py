"""Failure notifications — Slack and Telegram webhooks.

Fires when a health-check invocation has failed checks. Each failing URL is
listed once with the reason it failed.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from healthchecks.config import Settings
from healthchecks.health.engine import Outcome

logger = logging.getLogger(__name__)

OnFailed = Callable[[list[Outcome]], Any]  # may return an awaitable

TELEGRAM_API = "https://api.telegram.org"

# Telegram rejects messages over 4096 chars
_MAX_LINES = 30


def unique_failures(failed: Sequence[Outcome]) -> list[Outcome]:
    """First Outcome per URL, in the order given."""
    seen: set[str] = set()
    unique = []
    for outcome in failed:
        if outcome.url not in seen:
            seen.add(outcome.url)
            unique.append(outcome)
    return unique


def format_failures(failed: Sequence[Outcome], title: str = "Health checks failed") -> str:
    """One ``url => reason`` line per failing check, de-duplicated by URL."""
    unique = unique_failures(failed)
    lines = [f"• {outcome}" for outcome in unique[:_MAX_LINES]]
    if len(unique) > _MAX_LINES:
        lines.append(f"… and {len(unique) - _MAX_LINES} more")
    return f"🔴 *{title}* ({len(unique)})\n" + "\n".join(lines)


def slack_payload(failed: Sequence[Outcome]) -> dict[str, Any]:
    """Incoming-webhook body; the reason breakdown goes in a context block."""
    text = format_failures(failed)
    by_reason: dict[str, int] = {}
    for outcome in unique_failures(failed):
        key = outcome.reason.value if outcome.reason else "unknown"
        by_reason[key] = by_reason.get(key, 0) + 1
    summary = ", ".join(f"{reason}: {count}" for reason, count in sorted(by_reason.items()))
    return {
        "text": text,
        "mrkdwn": True,
        "blocks": [
            {"type": "section", "text": {"type": "mrkdwn", "text": text}},
            {"type": "context", "elements": [{"type": "mrkdwn", "text": summary}]},
        ],
    }


def telegram_payload(failed: Sequence[Outcome], chat_id: str) -> dict[str, Any]:
    return {
        "chat_id": chat_id,
        "text": format_failures(failed),
        "parse_mode": "Markdown",
        "disable_web_page_preview": True,
    }


async def call_on_failed(callback: OnFailed, failed: list[Outcome]) -> None:
    """Invoke a sync or async failure hook; errors are logged, never raised."""
    try:
        result = callback(failed)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("on_failed callback error")


class NotificationManager:
    """Posts failed-check summaries to the configured Slack / Telegram channels."""

    def __init__(
        self,
        slack_webhook: str = "",
        telegram_token: str = "",
        telegram_chat_id: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.slack_webhook = slack_webhook
        self.telegram_token = telegram_token
        self.telegram_chat_id = telegram_chat_id
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> NotificationManager:
        return cls(
            slack_webhook=settings.slack_webhook_url,
            telegram_token=settings.telegram_bot_token,
            telegram_chat_id=settings.telegram_chat_id,
        )

    @property
    def is_enabled(self) -> bool:
        return bool(self.slack_webhook or (self.telegram_token and self.telegram_chat_id))

    def requests_for(self, failed: Sequence[Outcome]) -> list[tuple[str, str, dict[str, Any]]]:
        """``(channel, url, json body)`` for every configured channel."""
        requests = []
        if self.slack_webhook:
            requests.append(("Slack", self.slack_webhook, slack_payload(failed)))
        if self.telegram_token and self.telegram_chat_id:
            url = f"{TELEGRAM_API}/bot{self.telegram_token}/sendMessage"
            requests.append(("Telegram", url, telegram_payload(failed, self.telegram_chat_id)))
        return requests

    async def notify_checks_failed(self, failed: list[Outcome]) -> None:
        """Usable directly as the ``on_failed`` hook."""
        requests = self.requests_for(failed) if failed else []
        if not requests:
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            await asyncio.gather(*(
                self._post(client, channel, url, payload) for channel, url, payload in requests
            ))

    @staticmethod
    async def _post(client: httpx.AsyncClient, channel: str, url: str, payload: dict[str, Any]) -> None:
        try:
            resp = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("%s notification failed: %s", channel, exc)
            return
        if resp.status_code != 200:
            logger.warning("%s returned %d: %s", channel, resp.status_code, resp.text[:200])
