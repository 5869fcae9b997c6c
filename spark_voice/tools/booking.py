"""
Booking webhook client.

POSTs the completed BookingDraft. A 2xx reply counts as success unless
its JSON body says ``"success": false``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from spark_voice.config import settings
from spark_voice.logging_context import get_call_logger
from spark_voice.schemas.booking_schema import BookingDraft, BookingResult

logger = get_call_logger(__name__)


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class BookingResponse:
    status: BookingStatus
    result: BookingResult


class BookingClient:
    """Blocking client for the booking webhook."""

    def __init__(
        self,
        url: str = settings.webhooks.booking_url,
        timeout: float = settings.webhooks.timeout_sec,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def confirm_booking(self, booking: BookingDraft, idempotency_key: str) -> BookingResponse:
        if not self.url:
            logger.warning("CONFIRMBOOKING_WEBHOOK_URL is not configured")
            return self._failed("booking webhook not configured")

        try:
            response = self._client.post(
                self.url,
                json=booking.model_dump(mode="json"),
                headers={"Idempotency-Key": idempotency_key},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Booking webhook returned %s", exc.response.status_code)
            return self._failed(f"http {exc.response.status_code}")
        except httpx.HTTPError as exc:
            logger.warning("Booking webhook request failed: %s", exc)
            return self._failed(type(exc).__name__)

        try:
            content = response.json()
        except ValueError:
            content = None

        if isinstance(content, dict):
            if content.get("success") is False:
                logger.warning("Booking webhook rejected the booking: %s", content.get("message"))
                return self._failed(str(content.get("message") or "rejected"))
            reference = content.get("reference") or content.get("booking_ref")
            result = BookingResult(
                success=True,
                reference=str(reference) if reference else None,
                message=str(content.get("message") or ""),
            )
        else:
            result = BookingResult(success=True, message=response.text.strip())

        logger.info("Booking confirmed (reference=%s)", result.reference)
        return BookingResponse(BookingStatus.CONFIRMED, result)

    @staticmethod
    def _failed(message: str) -> BookingResponse:
        return BookingResponse(BookingStatus.FAILED, BookingResult(success=False, message=message))

    def close(self) -> None:
        self._client.close()
