"""Slack-style channel delivery with bounded retries."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from standup_bot.config import Settings
from standup_bot.standup.models import ComposedReport, DeliveryMode, ProjectView

logger = logging.getLogger(__name__)

HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500
RATE_LIMITED_ERROR = "rate_limited"
DEFAULT_USER_AGENT = "standup-bot/0.1"


@dataclass(slots=True)
class ChannelConfig:
    """Where and how a report is posted."""

    mode: DeliveryMode
    webhook_url: str | None = None
    bot_token: str | None = None
    channel_id: str | None = None
    thread_ts: str | None = None

    @classmethod
    def from_project(cls, project: ProjectView) -> ChannelConfig:
        try:
            mode = DeliveryMode(project.slack_mode)
        except ValueError:
            mode = DeliveryMode.WEBHOOK
            logger.warning(
                "Unknown delivery mode %r for project %s, using webhook",
                project.slack_mode,
                project.id,
            )
        return cls(
            mode=mode,
            webhook_url=project.slack_webhook_url,
            bot_token=project.slack_bot_token,
            channel_id=project.slack_channel_id,
            thread_ts=project.slack_thread_ts,
        )


@dataclass(slots=True)
class DeliveryResult:
    """Outcome of one delivery, after all retries."""

    success: bool
    ts: str | None = None
    error: str | None = None
    attempts: int = 0


@dataclass(slots=True)
class DeliveryError(Exception):
    """Base delivery error."""

    message: str
    code: str = "delivery_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class TemporaryDeliveryError(DeliveryError):
    """Retryable delivery error, optionally carrying a server retry hint."""

    retry_after: float | None = None
    rate_limited: bool = False


@dataclass(slots=True)
class NonRetryableDeliveryError(DeliveryError):
    """Delivery error that must not be retried."""


class SlackDeliveryClient:
    """Post composed reports through an incoming webhook or the bot API.

    ``deliver`` never raises: every outcome, including exhausted retries and
    misconfiguration, comes back as a ``DeliveryResult``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(settings.delivery.request_timeout_seconds, connect=5.0),
            headers={"User-Agent": DEFAULT_USER_AGENT},
        )
        self._sleep = sleep
        self._rng = rng or random.Random()

    def deliver(self, report: ComposedReport, channel: ChannelConfig) -> DeliveryResult:
        max_attempts = self.settings.delivery.max_attempts
        attempt = 0
        last_error: DeliveryError | None = None
        while attempt < max_attempts:
            attempt += 1
            try:
                ts = self._post_once(report, channel)
            except NonRetryableDeliveryError as error:
                logger.warning("Delivery failed permanently (%s): %s", error.code, error)
                return DeliveryResult(success=False, error=str(error), attempts=attempt)
            except TemporaryDeliveryError as error:
                last_error = error
                if attempt >= max_attempts:
                    break
                cap = self.settings.delivery.max_retry_after_seconds
                if error.retry_after is not None and error.retry_after > cap:
                    logger.warning(
                        "Delivery gave up: server asked to wait %.0fs, cap is %.0fs",
                        error.retry_after,
                        cap,
                    )
                    return DeliveryResult(
                        success=False,
                        error=f"Retry-After {error.retry_after:g}s exceeds {cap:g}s: {error}",
                        attempts=attempt,
                    )
                delay = self._backoff_seconds(attempt, error)
                logger.warning(
                    "Delivery attempt %s/%s failed (%s): %s; retrying in %.2fs",
                    attempt,
                    max_attempts,
                    error.code,
                    error,
                    delay,
                )
                self._sleep(delay)
                continue
            except Exception as error:  # noqa: BLE001
                logger.exception("Unexpected delivery error")
                return DeliveryResult(success=False, error=str(error), attempts=attempt)
            return DeliveryResult(success=True, ts=ts, attempts=attempt)

        message = str(last_error) if last_error is not None else "Delivery failed"
        logger.warning("Delivery gave up after %s attempt(s): %s", attempt, message)
        return DeliveryResult(
            success=False,
            error=f"Retries exhausted: {message}",
            attempts=attempt,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SlackDeliveryClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _post_once(self, report: ComposedReport, channel: ChannelConfig) -> str | None:
        if channel.mode is DeliveryMode.BOT:
            return self._post_bot(report, channel)
        return self._post_webhook(report, channel)

    def _post_webhook(self, report: ComposedReport, channel: ChannelConfig) -> str | None:
        if not channel.webhook_url:
            raise NonRetryableDeliveryError(
                message="Webhook delivery requires a webhook URL.",
                code="config",
            )
        body: dict[str, Any] = {"text": report.post_text}
        if channel.thread_ts:
            body["thread_ts"] = channel.thread_ts
        response = self._send(channel.webhook_url, body=body)
        _raise_for_status(response)
        return None

    def _post_bot(self, report: ComposedReport, channel: ChannelConfig) -> str | None:
        if not channel.bot_token or not channel.channel_id:
            raise NonRetryableDeliveryError(
                message="Bot delivery requires a bot token and a channel id.",
                code="config",
            )
        body: dict[str, Any] = {"channel": channel.channel_id, "text": report.post_text}
        if channel.thread_ts:
            body["thread_ts"] = channel.thread_ts
        response = self._send(
            self.settings.delivery.api_url,
            body=body,
            headers={"Authorization": f"Bearer {channel.bot_token}"},
        )
        _raise_for_status(response)
        try:
            payload = response.json()
        except ValueError as error:
            raise NonRetryableDeliveryError(
                message="Bot API returned a non-JSON response.",
                code="invalid_response",
            ) from error
        if not isinstance(payload, dict):
            raise NonRetryableDeliveryError(
                message="Bot API returned an unexpected payload.",
                code="invalid_response",
            )
        if payload.get("ok"):
            ts = payload.get("ts")
            return str(ts) if ts is not None else None

        error_code = str(payload.get("error") or "unknown_error")
        if error_code == RATE_LIMITED_ERROR:
            raise TemporaryDeliveryError(
                message="Bot API rate limited the request.",
                code=RATE_LIMITED_ERROR,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                rate_limited=True,
            )
        raise NonRetryableDeliveryError(message=f"Bot API error: {error_code}", code=error_code)

    def _send(
        self,
        url: str,
        *,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            return self._client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as error:
            raise TemporaryDeliveryError(
                message=f"Delivery timed out: {error}",
                code="timeout",
            ) from error
        except httpx.HTTPError as error:
            raise TemporaryDeliveryError(
                message=f"Delivery transport error: {error}",
                code="transport",
            ) from error

    def _backoff_seconds(self, attempt: int, error: TemporaryDeliveryError) -> float:
        if error.rate_limited and error.retry_after is not None:
            return error.retry_after
        base = self.settings.delivery.retry_base_seconds * (2 ** (attempt - 1))
        return base + self._rng.uniform(0, self.settings.delivery.retry_base_seconds)


def _raise_for_status(response: httpx.Response) -> None:
    status = response.status_code
    if status == HTTP_TOO_MANY_REQUESTS:
        raise TemporaryDeliveryError(
            message="Channel rate limited the request (HTTP 429).",
            code=str(status),
            retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            rate_limited=True,
        )
    if status >= HTTP_SERVER_ERROR:
        raise TemporaryDeliveryError(
            message=f"Channel server error: HTTP {status}",
            code=str(status),
        )
    if not response.is_success:
        raise NonRetryableDeliveryError(
            message=f"Channel rejected the request: HTTP {status}",
            code=str(status),
        )


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if parsed >= 0 else None
