"""
Hub event reporter.

Publishes booking lifecycle, payment, error and heartbeat events to the
external event hub. Every event travels in the same envelope:

    {id: ULID, type, version: 1, source, occurred_at, payload}

Delivery is best-effort. The reporter never raises: a disabled reporter
answers True without sending, a misconfigured one answers False and logs the
missing keys, and transport failures are logged and answered with False.
"""

import logging
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any

import httpx
import pybreaker
import ulid

from shared.circuit_breaker import call_with_breaker, hub_breaker
from shared.config import get_settings
from shared.uptime import get_uptime_tracker

logger = logging.getLogger(__name__)

EVENT_VERSION = 1

# Hub event types
INTERACTION_DETECTED = "InteractionDetected"
ERROR_REPORTED = "ErrorReported"
AGENT_HEARTBEAT = "AgentHeartbeat"


class HubEventReporter:
    """
    Event sink backed by the hub's ``POST /events`` endpoint.

    Implements the ``notify(event_type, payload)`` contract used by the
    booking state machine, plus typed helpers for the other hub events.
    """

    def __init__(
        self,
        enabled: bool | None = None,
        api_url: str | None = None,
        api_token: str | None = None,
        source: str | None = None,
        timeout: float | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ):
        settings = get_settings()
        self.enabled = settings.HUB_EVENTS_ENABLED if enabled is None else enabled
        self.api_url = (settings.HUB_API_URL if api_url is None else api_url).rstrip("/")
        self.api_token = settings.HUB_API_TOKEN if api_token is None else api_token
        self.source = settings.HUB_EVENT_SOURCE if source is None else source
        self.timeout = settings.HUB_TIMEOUT_SECONDS if timeout is None else timeout
        self.breaker = breaker or hub_breaker

    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_token and self.source)

    def missing_config(self) -> list[str]:
        missing = []
        if not self.api_url:
            missing.append("HUB_API_URL")
        if not self.api_token:
            missing.append("HUB_API_TOKEN")
        if not self.source:
            missing.append("HUB_EVENT_SOURCE")
        return missing

    def build_event(
        self,
        event_type: str,
        payload: dict[str, Any],
        occurred_at: datetime | None = None,
    ) -> dict[str, Any]:
        """Wrap a payload in the hub event envelope."""
        return {
            "id": str(ulid.ULID()),
            "type": event_type,
            "version": EVENT_VERSION,
            "source": self.source,
            "occurred_at": (occurred_at or datetime.now(UTC)).isoformat(),
            "payload": payload,
        }

    async def send(
        self,
        event_type: str,
        payload: dict[str, Any],
        occurred_at: datetime | None = None,
    ) -> bool:
        """
        Send one event to the hub.

        Args:
            event_type: Hub event type (InteractionDetected, AgentHeartbeat, ...)
            payload: Event-specific data
            occurred_at: Event time (defaults to now, UTC)

        Returns:
            True if delivered (or reporting is disabled), False otherwise
        """
        if not self.enabled:
            logger.debug(f"Hub event skipped (disabled): type={event_type}")
            return True

        if not self.is_configured():
            logger.error(
                f"Hub reporter not configured, missing: {', '.join(self.missing_config())}"
            )
            return False

        event = self.build_event(event_type, payload, occurred_at)

        try:
            response = await call_with_breaker(self.breaker, self._post, event)
        except pybreaker.CircuitBreakerError:
            logger.warning(f"Hub circuit open, dropping event: type={event_type}")
            return False
        except Exception as e:
            logger.error(f"Hub event delivery failed: type={event_type} | {type(e).__name__}: {e}")
            return False

        if response.is_success:
            logger.info(f"Hub event sent: type={event_type} | id={event['id']}")
            return True

        logger.error(
            f"Hub rejected event: type={event_type} | "
            f"status={response.status_code} | body={response.text[:500]}"
        )
        return False

    async def _post(self, event: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(
                f"{self.api_url}/events",
                json=event,
                headers={"Authorization": f"Bearer {self.api_token}"},
            )

    async def notify(self, event_type: str, payload: dict[str, Any]) -> bool:
        """Event sink entry point for booking lifecycle actions."""
        return await self.booking_event(event_type, payload)

    async def booking_event(self, action: str, data: dict[str, Any]) -> bool:
        return await self.send(INTERACTION_DETECTED, {"action": action, **data})

    async def payment_event(self, action: str, data: dict[str, Any]) -> bool:
        return await self.send(INTERACTION_DETECTED, {"action": action, **data})

    async def report_error(
        self,
        severity: str,
        message: str,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """
        Report an error to the hub.

        Args:
            severity: critical, high, medium or low
            message: Human readable error message
            context: Additional context (a ``trace`` key is lifted to the top level)
        """
        context = context or {}
        return await self.send(
            ERROR_REPORTED,
            {
                "severity": severity,
                "message": message,
                "context": context,
                "trace": context.get("trace"),
            },
        )

    async def heartbeat(self, extra: dict[str, Any] | None = None) -> bool:
        payload = {
            "status": "healthy",
            "uptime_seconds": get_uptime_tracker().uptime_seconds(),
        }
        payload.update(extra or {})
        return await self.send(AGENT_HEARTBEAT, payload)


@lru_cache
def get_hub_reporter() -> HubEventReporter:
    """Process-wide reporter configured from settings."""
    return HubEventReporter()
