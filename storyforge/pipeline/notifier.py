"""
Slack Notifier

Posts one Block Kit message per work item to a Slack incoming webhook and
records the delivery status on the item.

Delivery is sequential and paced by a RateLimiter; there is no retry and
no backoff on 429 responses. A failed delivery never stops the batch.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..common.errors import ValidationError
from ..common.rate_limiter import RateLimiter
from ..common.schemas import NotificationResult, WorkItem, render_confidence

logger = logging.getLogger("storyforge.pipeline.notifier")

WEBHOOK_PREFIX = "https://hooks.slack.com/services/"
BOT_USERNAME = "Storyforge"
BOT_ICON = ":robot_face:"
MAX_ERROR_BODY = 500


def validate_webhook_url(url: Optional[str]) -> str:
    """Reject anything that is not a Slack incoming-webhook URL"""
    if not url or not url.startswith(WEBHOOK_PREFIX):
        raise ValidationError(f"Invalid webhook URL format. Must start with {WEBHOOK_PREFIX}")
    return url


def _mrkdwn(text: str) -> Dict[str, str]:
    return {"type": "mrkdwn", "text": text}


def _section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": _mrkdwn(text)}


def build_message(item: WorkItem) -> Dict[str, Any]:
    """Build the Slack payload for one work item"""
    footer = (
        f"📊 Confidence: {render_confidence(item)}"
        f" | 📅 From: {item.source_title or item.source_document_id or 'unknown'}"
        f" | ⏰ {item.source_timestamp.date().isoformat()}"
    )
    if item.share_url:
        footer += f" | 🎥 <{item.share_url}|View Recording>"

    criteria = "\n".join(f"• {c}" for c in item.acceptance_criteria) or "Not specified"

    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"🤖 Story Generated: {item.title}"[:150]},
        },
        {
            "type": "section",
            "fields": [
                _mrkdwn(f"*Type:* {item.type}"),
                _mrkdwn(f"*Priority:* {item.priority}"),
                _mrkdwn(f"*Effort:* {item.effort}"),
                _mrkdwn(f"*Epic:* {item.epic}"),
            ],
        },
        _section(f"*User Story:*\n{item.user_story or 'Not specified'}"),
        _section(f"*🎯 Problem/Opportunity:*\n{item.problem_statement or item.description}"),
        _section(f"*Description:*\n{item.description}"),
        _section(f"*Business Value:*\n{item.business_value}"),
        _section(f"*Acceptance Criteria:*\n{criteria}"),
        {"type": "context", "elements": [_mrkdwn(footer)]},
        {"type": "divider"},
    ]

    return {
        "text": f"Story Generated: {item.title}",
        "blocks": blocks,
        "username": BOT_USERNAME,
        "icon_emoji": BOT_ICON,
    }


def describe_failure(status_code: int, body: str) -> str:
    detail = f"HTTP {status_code}: {body[:MAX_ERROR_BODY]}"
    if status_code == 404:
        detail += " (webhook endpoint invalid/deleted - check the webhook URL in Slack app settings)"
    return detail


class SlackNotifier:
    """
    Delivers work items to a Slack incoming webhook.

    Args:
        limiter: Pacing between consecutive posts
        client: httpx.AsyncClient to post with (tests pass one built on
            httpx.MockTransport)
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        limiter: Optional[RateLimiter] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._limiter = limiter or RateLimiter.from_interval(0.3)
        self._client = client
        self._timeout = timeout

    async def _post(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=payload)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
            return await client.post(url, json=payload)

    async def send(self, item: WorkItem, webhook_url: str) -> NotificationResult:
        """Post one work item and attach the result to it"""
        result = await self._deliver(item, webhook_url)
        item.attach_notification(result)
        return result

    async def _deliver(self, item: WorkItem, webhook_url: str) -> NotificationResult:
        try:
            validate_webhook_url(webhook_url)
        except ValidationError as e:
            logger.warning("Slack notification rejected for %r: %s", item.title, e)
            return NotificationResult(success=False, error_detail=str(e))

        start = time.monotonic()
        try:
            response = await self._post(webhook_url, build_message(item))
        except httpx.HTTPError as e:
            logger.warning("Slack notification failed for %r: %s", item.title, e)
            return NotificationResult(success=False, error_detail=f"{type(e).__name__}: {e}")
        latency_ms = int((time.monotonic() - start) * 1000)

        if not response.is_success:
            detail = describe_failure(response.status_code, response.text)
            logger.warning("Slack notification failed for %r: %s", item.title, detail)
            return NotificationResult(
                success=False,
                error_detail=detail,
                status_code=response.status_code,
                latency_ms=latency_ms,
            )

        logger.info("Slack notification sent for story: %s (%dms)", item.title, latency_ms)
        return NotificationResult(
            success=True,
            status_code=response.status_code,
            latency_ms=latency_ms,
        )

    async def dispatch(self, items: List[WorkItem], webhook_url: str) -> List[NotificationResult]:
        """Deliver items one at a time, paced by the rate limiter.

        Raises:
            ValidationError: if the webhook URL is malformed (nothing is sent)
        """
        validate_webhook_url(webhook_url)
        logger.info("Sending %d Slack notifications...", len(items))

        results = []
        for item in items:
            await self._limiter.acquire()
            results.append(await self.send(item, webhook_url))
        return results

    async def send_test(self, webhook_url: str) -> NotificationResult:
        """Post a connection-test message"""
        validate_webhook_url(webhook_url)
        payload = {
            "text": "🤖 Storyforge Webhook Test",
            "blocks": [
                _section("✅ *Storyforge Connection Test*\n\n"
                         "If you see this message, your webhook is working correctly!")
            ],
        }
        start = time.monotonic()
        try:
            response = await self._post(webhook_url, payload)
        except httpx.HTTPError as e:
            return NotificationResult(success=False, error_detail=f"{type(e).__name__}: {e}")
        latency_ms = int((time.monotonic() - start) * 1000)

        if not response.is_success:
            return NotificationResult(
                success=False,
                error_detail=describe_failure(response.status_code, response.text),
                status_code=response.status_code,
                latency_ms=latency_ms,
            )
        return NotificationResult(success=True, status_code=response.status_code, latency_ms=latency_ms)
