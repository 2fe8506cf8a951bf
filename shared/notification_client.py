"""
Reminder notification client.

Hands a booking reminder to the notifications API, which owns delivery
(email, SMS, ...). The reminder sweep only needs to know whether the hand-off
succeeded.
"""

import logging
from typing import Any, Protocol

import httpx
import pybreaker
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.circuit_breaker import call_with_breaker, notifications_breaker
from shared.config import get_settings

logger = logging.getLogger(__name__)


class ReminderSender(Protocol):
    """Anything that can dispatch a reminder for a booking."""

    async def send_reminder(self, booking: Any) -> bool: ...


class NotificationClient:
    """
    Client for the notifications API.

    Transient HTTP errors are retried with exponential backoff, and a
    circuit breaker stops a sweep from hammering a dead endpoint.
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_token: str | None = None,
        timeout: float | None = None,
        breaker: pybreaker.CircuitBreaker | None = None,
    ):
        settings = get_settings()
        self.api_url = (api_url if api_url is not None else settings.NOTIFICATIONS_API_URL).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.NOTIFICATIONS_API_TOKEN
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT_SECONDS
        self.breaker = breaker or notifications_breaker

        self.headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def build_reminder(booking: Any) -> dict[str, Any]:
        """Reminder payload for one booking."""
        return {
            "template": "booking_reminder",
            "booking_id": booking.id,
            "recipient": {
                "name": booking.client_name,
                "email": booking.client_email,
                "phone": booking.client_phone,
            },
            "scheduled_at": booking.scheduled_at.isoformat(),
            "duration_minutes": booking.duration_minutes,
        }

    async def send_reminder(self, booking: Any) -> bool:
        """
        Dispatch a reminder for the booking.

        Returns:
            True if the notifications API accepted the reminder, False otherwise
        """
        if not self.api_url:
            logger.error(f"NOTIFICATIONS_API_URL not set, cannot remind booking {booking.id}")
            return False

        payload = self.build_reminder(booking)

        try:
            await call_with_breaker(self.breaker, self._post_reminder, payload)
        except pybreaker.CircuitBreakerError:
            logger.warning(f"Notifications circuit open, reminder skipped for booking {booking.id}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Reminder dispatch failed for booking {booking.id}: {e}")
            return False

        logger.info(f"Reminder dispatched for booking {booking.id} to {booking.client_email}")
        return True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True,
    )
    async def _post_reminder(self, payload: dict[str, Any]) -> None:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"{self.api_url}/reminders",
                json=payload,
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
