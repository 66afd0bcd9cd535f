"""DeliveryEngine -- signed webhook delivery with retry and backoff.

Each payload is POSTed as JSON to one sink. Any non-2xx response and any
network-level failure (connect errors, timeouts) is retried, including 4xx
responses. Attempts are bounded by ``max_retries + 1``; the wait before
retry *n* (1-indexed) is ``retry_delay * n`` for the linear strategy and
``retry_delay * 2 ** (n - 1)`` for the exponential one. Nothing is awaited
after the final attempt.

When a signing secret is configured, an HMAC-SHA256 hex digest of the
exact request body is sent in ``X-Webhook-Signature``, recomputed for
every attempt.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from collections.abc import Awaitable, Callable

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_incrementing,
)
from tenacity.wait import wait_base

from src.relay.delivery.schemas import DeliveryConfig, DeliveryResult, RetryStrategy
from src.relay.meetings.schemas import MeetingPayload

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


class DeliveryError(Exception):
    """A webhook answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def sign_payload(body: str, secret: str) -> str:
    """Hex-encoded HMAC-SHA256 of the body."""
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def backoff_wait(strategy: RetryStrategy, base_delay: float) -> wait_base:
    """Tenacity wait policy for the configured strategy."""
    if strategy == RetryStrategy.EXPONENTIAL:
        return wait_exponential(multiplier=base_delay, exp_base=2, min=0)
    return wait_incrementing(start=base_delay, increment=base_delay)


class DeliveryEngine:
    """Sends payloads to a webhook sink.

    Args:
        client: Optional shared httpx.AsyncClient. When omitted a client is
            opened per delivery.
        sleep: Awaitable sleep used between attempts (injectable in tests).
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._sleep = sleep

    async def deliver(
        self, payload: MeetingPayload, config: DeliveryConfig
    ) -> DeliveryResult:
        """Deliver one payload, retrying per config.

        Returns:
            DeliveryResult; ``retries`` is the number of attempts made
            beyond the first (0 on first-try success).
        """
        body = payload.to_json()
        total_attempts = config.max_retries + 1
        attempts = 0

        def _log_failed_attempt(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "delivery_attempt_failed",
                url=config.url,
                meeting_id=payload.meeting_id,
                attempt=state.attempt_number,
                max_attempts=total_attempts,
                error=str(exc),
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(total_attempts),
            wait=backoff_wait(config.retry_strategy, config.retry_delay),
            retry=retry_if_exception_type((DeliveryError, httpx.HTTPError)),
            after=_log_failed_attempt,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = await self._post(body, config)
        except (DeliveryError, httpx.HTTPError) as exc:
            logger.error(
                "delivery_failed",
                url=config.url,
                meeting_id=payload.meeting_id,
                attempts=attempts,
                error=str(exc),
            )
            return DeliveryResult(
                success=False,
                status_code=getattr(exc, "status_code", None),
                retries=attempts - 1,
                error=str(exc),
            )

        logger.info(
            "delivery_succeeded",
            url=config.url,
            meeting_id=payload.meeting_id,
            status_code=response.status_code,
            retries=attempts - 1,
        )
        return DeliveryResult(
            success=True,
            status_code=response.status_code,
            retries=attempts - 1,
            response=response.text,
        )

    def _headers(self, body: str, config: DeliveryConfig) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **config.headers}
        if config.secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, config.secret)
        return headers

    async def _post(self, body: str, config: DeliveryConfig) -> httpx.Response:
        headers = self._headers(body, config)
        if self._client is not None:
            response = await self._client.post(
                config.url, content=body, headers=headers, timeout=config.timeout
            )
        else:
            async with httpx.AsyncClient(timeout=config.timeout) as client:
                response = await client.post(config.url, content=body, headers=headers)

        if not response.is_success:
            raise DeliveryError(
                f"HTTP error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response
