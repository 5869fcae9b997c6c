"""
External action coordinator: pricing and booking submissions.

Owns everything around the two webhooks: the completeness gate, the
minimum-hours floor, the frozen snapshot, currency validation and the
bounded retry policy. The orchestrator only maps the returned outcome to
a stage transition and a spoken line.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from spark_voice.config import AppConfig, settings
from spark_voice.conversation import quote_rules
from spark_voice.conversation.guardrails import GuardrailPipeline
from spark_voice.conversation.state_machine import Stage
from spark_voice.logging_context import get_call_logger
from spark_voice.schemas.booking_schema import BookingDraft
from spark_voice.schemas.quote_schema import QuoteResult, SubmittedQuote
from spark_voice.schemas.session_schema import CallSession
from spark_voice.tools.booking import BookingResponse, BookingStatus
from spark_voice.tools.pricing import PricingResponse, PricingStatus

logger = get_call_logger(__name__)


class PricingService(Protocol):
    def get_quote(self, quote: SubmittedQuote, idempotency_key: str) -> PricingResponse: ...


class BookingService(Protocol):
    def confirm_booking(self, booking: BookingDraft, idempotency_key: str) -> BookingResponse: ...


@dataclass
class PricingOutcome:
    status: PricingStatus
    result: Optional[QuoteResult] = None
    retry_allowed: bool = False
    missing_field: Optional[str] = None


@dataclass
class BookingOutcome:
    status: BookingStatus
    reference: Optional[str] = None
    retry_allowed: bool = False


class ActionCoordinator:
    """Invokes the pricing and booking collaborators for a call."""

    def __init__(
        self,
        pricing: PricingService,
        booking: BookingService,
        guardrails: Optional[GuardrailPipeline] = None,
        config: AppConfig = settings,
    ) -> None:
        self.pricing = pricing
        self.booking = booking
        self.guardrails = guardrails or GuardrailPipeline()
        self.max_pricing_attempts = config.guardrails.max_pricing_attempts
        self.max_booking_attempts = config.guardrails.max_booking_attempts

    # ------------------------------------------------------------------ #
    # Pricing
    # ------------------------------------------------------------------ #

    def request_price(self, session: CallSession) -> PricingOutcome:
        """Gate, normalize, snapshot and submit the quote."""
        missing = quote_rules.first_missing_field(session.quote)
        if missing is not None:
            logger.info("Pricing blocked, missing %s", missing)
            return PricingOutcome(PricingStatus.INCOMPLETE, missing_field=missing)

        quote_rules.apply_minimum_hours(session.quote)
        snapshot = SubmittedQuote.from_draft(session.quote)
        session.submitted_quote = snapshot
        session.last_pricing = None
        session.submission_count += 1
        key = f"{session.call_id}-quote-{session.submission_count}"

        logger.info(
            "Submitting quote: %s / %s / %s",
            snapshot.service_category, snapshot.service_type, snapshot.property_type,
        )
        response = self.pricing.get_quote(snapshot, key)

        if response.status != PricingStatus.OK or response.result is None:
            return self._pricing_failed(session)

        check = self.guardrails.check_pricing_response(response.raw_body, response.result.currency)
        if not check.passed:
            logger.warning("Pricing reply rejected: %s", check.message)
            return PricingOutcome(PricingStatus.CURRENCY_VIOLATION)

        session.last_pricing = response.result
        session.pricing_attempts = 0
        return PricingOutcome(PricingStatus.OK, result=response.result)

    def _pricing_failed(self, session: CallSession) -> PricingOutcome:
        session.pricing_attempts += 1
        if session.pricing_attempts >= self.max_pricing_attempts:
            logger.warning("Pricing failed %d times, moving to callback", session.pricing_attempts)
            return PricingOutcome(PricingStatus.FAILED, retry_allowed=False)

        # Retry resumes at the postcode question.
        session.quote.postcode = ""
        session.postcode_confirmed = False
        session.reset_attempts(Stage.NEED_POSTCODE)
        session.reset_attempts(Stage.CONFIRM_POSTCODE)
        logger.info("Pricing failed, retrying from postcode (attempt %d)", session.pricing_attempts)
        return PricingOutcome(PricingStatus.FAILED, retry_allowed=True)

    def invalidate_quote(self, session: CallSession) -> None:
        """A confirmed correction makes the previous price stale."""
        if session.submitted_quote is not None:
            logger.info("Quote invalidated by correction")
        session.submitted_quote = None
        session.last_pricing = None

    # ------------------------------------------------------------------ #
    # Booking
    # ------------------------------------------------------------------ #

    def submit_booking(self, session: CallSession) -> BookingOutcome:
        booking = session.booking
        if booking is None:
            raise ValueError("submit_booking called before booking was accepted")

        session.booking_attempts += 1
        key = f"{session.call_id}-booking-{session.booking_attempts}"
        response = self.booking.confirm_booking(booking, key)

        if response.status == BookingStatus.CONFIRMED:
            return BookingOutcome(BookingStatus.CONFIRMED, reference=response.result.reference)

        if session.booking_attempts >= self.max_booking_attempts:
            logger.warning("Booking failed %d times, team will call back", session.booking_attempts)
            return BookingOutcome(BookingStatus.FAILED, retry_allowed=False)

        # Only the date and time are collected again.
        booking.preferred_date = ""
        booking.preferred_time = ""
        if session.booking_slots is not None:
            session.booking_slots.clear_slot("preferred_date")
            session.booking_slots.clear_slot("preferred_time")
        return BookingOutcome(BookingStatus.FAILED, retry_allowed=True)
