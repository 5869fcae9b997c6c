"""Shared test fixtures and helpers."""

from typing import Optional

import pytest

from spark_voice.conversation.coordinator import ActionCoordinator
from spark_voice.conversation.delta_merger import DeltaMerger
from spark_voice.conversation.guardrails import GuardrailPipeline
from spark_voice.conversation.orchestrator import DialogueOrchestrator, TurnResult
from spark_voice.conversation.slot_manager import SlotManager
from spark_voice.conversation.state_machine import ConversationStateMachine
from spark_voice.schemas.booking_schema import BookingDraft, BookingResult
from spark_voice.schemas.quote_schema import QuoteDraft, QuoteResult, SubmittedQuote
from spark_voice.schemas.session_schema import CallSession
from spark_voice.tools.booking import BookingResponse, BookingStatus
from spark_voice.tools.pricing import PricingResponse, PricingStatus


class FakePricing:
    """Pricing collaborator replaying queued responses, then a default £120."""

    def __init__(self, responses: Optional[list[PricingResponse]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[tuple[SubmittedQuote, str]] = []

    def get_quote(self, quote: SubmittedQuote, idempotency_key: str) -> PricingResponse:
        self.calls.append((quote, idempotency_key))
        if self.responses:
            return self.responses.pop(0)
        return ok_pricing(120.0)


class FakeBooking:
    def __init__(self, responses: Optional[list[BookingResponse]] = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[tuple[BookingDraft, str]] = []

    def confirm_booking(self, booking: BookingDraft, idempotency_key: str) -> BookingResponse:
        self.calls.append((booking.model_copy(), idempotency_key))
        if self.responses:
            return self.responses.pop(0)
        return BookingResponse(
            BookingStatus.CONFIRMED, BookingResult(success=True, reference="TS-1001")
        )


class FakeExtractor:
    """AI extractor stand-in returning a fixed proposal (or None)."""

    def __init__(self, proposal: Optional[QuoteDraft] = None) -> None:
        self.proposal = proposal
        self.calls: list[str] = []

    def propose(self, current: QuoteDraft, utterance: str) -> Optional[QuoteDraft]:
        self.calls.append(utterance)
        return self.proposal.model_copy(deep=True) if self.proposal is not None else None


def ok_pricing(amount: float, currency: str = "GBP", explanation: str = "") -> PricingResponse:
    body = f'{{"amount": {amount}, "currency": "{currency}"}}'
    return PricingResponse(
        PricingStatus.OK,
        result=QuoteResult(amount=amount, currency=currency, explanation=explanation),
        raw_body=body,
    )


def failed_pricing() -> PricingResponse:
    return PricingResponse(PricingStatus.FAILED, detail="http 502")


def failed_booking() -> BookingResponse:
    return BookingResponse(BookingStatus.FAILED, BookingResult(success=False, message="slot taken"))


class CallDriver:
    """Plays caller lines into an orchestrator for a single call."""

    def __init__(self, orchestrator: DialogueOrchestrator, call_id: str = "CA-TEST-001") -> None:
        self.orchestrator = orchestrator
        self.call_id = call_id
        self.opening = orchestrator.start_call(call_id)
        self.last: TurnResult = self.opening

    @property
    def session(self) -> CallSession:
        session = self.orchestrator.store.get(self.call_id)
        assert session is not None
        return session

    @property
    def stage(self):
        return self.session.stage

    def say(self, *lines: str) -> TurnResult:
        for line in lines:
            self.last = self.orchestrator.handle_utterance(self.call_id, line)
        return self.last


def build_orchestrator(
    pricing: Optional[FakePricing] = None,
    booking: Optional[FakeBooking] = None,
    extractor: Optional[FakeExtractor] = None,
) -> DialogueOrchestrator:
    guardrails = GuardrailPipeline()
    coordinator = ActionCoordinator(pricing or FakePricing(), booking or FakeBooking(), guardrails)
    merger = DeltaMerger(extractor, guardrails) if extractor is not None else None
    return DialogueOrchestrator(coordinator, merger=merger, guardrails=guardrails)


def complete_domestic_quote(**overrides) -> QuoteDraft:
    values = dict(
        service_category="domestic",
        domestic_service_type="Deep Clean",
        domestic_property_type="Semi-detached house",
        bedrooms=3,
        bathrooms=2,
        postcode="SW1A 1AA",
    )
    values.update(overrides)
    return QuoteDraft(**values)


def complete_commercial_quote(**overrides) -> QuoteDraft:
    values = dict(
        service_category="commercial",
        commercial_service_type="Regular Commercial Cleaning",
        commercial_property_type="Office",
        job_type="regular",
        visit_frequency_per_week=2,
        preferred_hours=4,
        postcode="EC1A 1BB",
        notes="Premises size: about 2000 square feet.",
    )
    values.update(overrides)
    return QuoteDraft(**values)


@pytest.fixture
def state_machine():
    return ConversationStateMachine()


@pytest.fixture
def slot_manager():
    return SlotManager()


@pytest.fixture
def guardrail_pipeline():
    return GuardrailPipeline()


@pytest.fixture
def pricing():
    return FakePricing()


@pytest.fixture
def booking():
    return FakeBooking()


@pytest.fixture
def orchestrator(pricing, booking):
    return build_orchestrator(pricing, booking)


@pytest.fixture
def call(orchestrator):
    return CallDriver(orchestrator)
