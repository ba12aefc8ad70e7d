"""
Incident External Service Integrations
======================================

External services for the ticket lifecycle:
- Chat gateway webhook (outbound messages)
- APScheduler for periodic reminders
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from incident_desk.core import ApplicationException, TransportException
from incident_desk.incidents.application import IChatTransport, ReminderService
from incident_desk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for the chat gateway.

    States:
    - CLOSED: requests pass through
    - OPEN: after N failed deliveries, reject everything for M seconds
    - HALF_OPEN: after the timeout, let one delivery try the gateway
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookChatTransport(IChatTransport):
    """
    Posts outbound messages to the chat gateway webhook.

    Payload: ``{"channel_id": ..., "text": ..., "media": ...}``. Any 2xx
    counts as delivered. Failed attempts are retried with exponential
    backoff; when every attempt fails, TransportException is raised.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._webhook_url = webhook_url
        self._timeout = timeout_seconds
        self._max_retries = max(1, max_retries)
        self._backoff_base = backoff_base
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    @staticmethod
    def _build_payload(channel_id: str, text: str, media: Optional[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"channel_id": channel_id, "text": text}
        if media:
            payload["media"] = media
        return payload

    async def deliver(self, channel_id: str, text: str, media: Optional[str] = None) -> None:
        if not self._webhook_url:
            logger.debug(
                "Chat webhook URL not configured, dropping message",
                extra={"channel_id": channel_id}
            )
            return

        if not self._circuit_breaker.allow_request():
            raise TransportException(channel_id, "circuit breaker open")

        payload = self._build_payload(channel_id, text, media)
        last_error = "no attempt made"

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=payload)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.debug(
                        "Chat message delivered",
                        extra={"channel_id": channel_id, "attempt": attempt + 1}
                    )
                    return

                last_error = f"gateway returned {response.status_code}"
                logger.warning(
                    "Chat webhook returned non-2xx",
                    extra={
                        "channel_id": channel_id,
                        "status_code": response.status_code,
                        "attempt": attempt + 1
                    }
                )

            except httpx.HTTPError as e:
                last_error = str(e) or type(e).__name__
                logger.error(
                    "Chat message delivery failed",
                    extra={
                        "channel_id": channel_id,
                        "error": last_error,
                        "attempt": attempt + 1
                    }
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * (2 ** attempt))

        self._circuit_breaker.record_failure()
        raise TransportException(channel_id, last_error)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class ReminderScheduler:
    """
    Runs the reminder sweep as an APScheduler interval job.

    One sweep at a time; a run that overlaps the previous one is skipped.
    A failed sweep is logged and the next interval tries again.
    """

    JOB_ID = "incident_reminders"

    def __init__(self, reminders: ReminderService, interval_seconds: int = 3600):
        self._reminders = reminders
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=interval_seconds,
            id=self.JOB_ID,
            max_instances=1,
            coalesce=True,
        )

    async def run_once(self) -> int:
        """One sweep. Returns reminders delivered, 0 when the sweep failed."""
        try:
            return await self._reminders.send_reminders()
        except ApplicationException as e:
            logger.error("Reminder run failed", extra={"error": e.message})
            return 0

    async def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Reminder scheduler started")

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler.running
