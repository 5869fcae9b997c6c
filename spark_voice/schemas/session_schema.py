"""Per-call session state."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from spark_voice.conversation.slot_manager import SlotManager
from spark_voice.conversation.state_machine import ConversationStateMachine, Stage
from spark_voice.schemas.booking_schema import BookingDraft
from spark_voice.schemas.quote_schema import QuoteDraft, QuoteResult, SubmittedQuote


class CallOutcome(str, Enum):
    BOOKED = "booked"
    DECLINED = "declined"
    CALLBACK_REQUESTED = "callback_requested"


@dataclass
class CallSession:
    """
    Everything the dialogue knows about one phone call.

    Created on call start, mutated once per caller utterance and
    discarded on call end. Owned by a single orchestrator at a time.
    """
    call_id: str
    machine: ConversationStateMachine = field(default_factory=ConversationStateMachine)
    quote: QuoteDraft = field(default_factory=QuoteDraft)
    booking: Optional[BookingDraft] = None
    booking_slots: Optional[SlotManager] = None
    transcript: list[str] = field(default_factory=list)
    attempt_counters: dict[str, int] = field(default_factory=dict)
    pending_extra_queue: list[str] = field(default_factory=list)
    extras_impact_acknowledged: bool = False

    # Guardrail bookkeeping
    property_confirmation_done: bool = False
    pending_property_type: Optional[str] = None
    postcode_confirmed: bool = False
    toilets_answered: bool = False
    kitchens_answered: bool = False
    extras_answered: bool = False
    hours_offer_pending: bool = False
    silence_turns: int = 0

    # External actions
    pricing_attempts: int = 0
    booking_attempts: int = 0
    submission_count: int = 0
    submitted_quote: Optional[SubmittedQuote] = None
    last_pricing: Optional[QuoteResult] = None
    callback: dict[str, str] = field(default_factory=dict)
    outcome: Optional[CallOutcome] = None

    @property
    def stage(self) -> Stage:
        return self.machine.current_stage

    def attempts(self, stage: Stage) -> int:
        return self.attempt_counters.get(stage.value, 0)

    def bump_attempts(self, stage: Stage) -> int:
        count = self.attempt_counters.get(stage.value, 0) + 1
        self.attempt_counters[stage.value] = count
        return count

    def reset_attempts(self, stage: Stage) -> None:
        self.attempt_counters.pop(stage.value, None)
