"""
Finite state machine for the quote and booking call flow.

Each stage asks one question. Transitions are an explicit table of
``(stage, trigger[, guard]) -> stage``; anything not in the table raises
InvalidTransitionError, which is a programming error and never the
result of something a caller said.

Usage:
    sm = ConversationStateMachine()
    sm.transition(Trigger.SLOT_FILLED, session)
    assert sm.current_stage == Stage.NEED_SERVICE_TYPE
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from spark_voice.conversation import quote_rules

if TYPE_CHECKING:
    from spark_voice.schemas.session_schema import CallSession

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """All stages of a call."""
    NEED_CATEGORY = "need_category"
    NEED_SERVICE_TYPE = "need_service_type"
    NEED_JOB_TYPE = "need_job_type"
    NEED_PROPERTY_TYPE = "need_property_type"
    CONFIRM_PROPERTY_TYPE = "confirm_property_type"
    NEED_POSTCODE = "need_postcode"
    CONFIRM_POSTCODE = "confirm_postcode"
    POSTCODE_FALLBACK = "postcode_fallback"
    NEED_ROOMS = "need_rooms"
    NEED_TOILETS = "need_toilets"
    NEED_KITCHENS = "need_kitchens"
    NEED_HOURS = "need_hours"
    NEED_FREQUENCY = "need_frequency"
    NEED_EXTRAS = "need_extras"
    NEED_EXTRA_QUANTITY = "need_extra_quantity"
    CONFIRM_QUOTE = "confirm_quote"
    CORRECTING = "correcting"
    PRICING_IN_FLIGHT = "pricing_in_flight"
    OFFER_BOOKING = "offer_booking"
    NEED_FULL_NAME = "need_full_name"
    NEED_PHONE = "need_phone"
    NEED_EMAIL = "need_email"
    NEED_ADDRESS = "need_address"
    NEED_BOOKING_POSTCODE = "need_booking_postcode"
    NEED_DATE = "need_date"
    NEED_TIME = "need_time"
    BOOKING_IN_FLIGHT = "booking_in_flight"
    CALLBACK_NAME = "callback_name"
    CALLBACK_PHONE = "callback_phone"
    ENDED = "ended"


class Trigger(str, Enum):
    """Events that cause stage transitions."""
    SLOT_FILLED = "slot_filled"
    NEEDS_CONFIRMATION = "needs_confirmation"
    REJECTED = "rejected"
    POSTCODE_FAILED = "postcode_failed"
    GATE_BLOCKED = "gate_blocked"
    QUOTE_CONFIRMED = "quote_confirmed"
    CORRECTION_REQUESTED = "correction_requested"
    PRICING_SUCCEEDED = "pricing_succeeded"
    PRICING_FAILED = "pricing_failed"
    CALLBACK_REQUIRED = "callback_required"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_DECLINED = "booking_declined"
    BOOKING_SUCCEEDED = "booking_succeeded"
    BOOKING_FAILED = "booking_failed"
    BOOKING_EXHAUSTED = "booking_exhausted"


# Stages that gather quote details; the AI merge only runs while in one of these.
QUOTE_STAGES: tuple[Stage, ...] = (
    Stage.NEED_CATEGORY, Stage.NEED_SERVICE_TYPE, Stage.NEED_JOB_TYPE,
    Stage.NEED_PROPERTY_TYPE, Stage.CONFIRM_PROPERTY_TYPE, Stage.NEED_POSTCODE,
    Stage.CONFIRM_POSTCODE, Stage.POSTCODE_FALLBACK, Stage.NEED_ROOMS,
    Stage.NEED_TOILETS, Stage.NEED_KITCHENS, Stage.NEED_HOURS,
    Stage.NEED_FREQUENCY, Stage.NEED_EXTRAS, Stage.NEED_EXTRA_QUANTITY,
)

BOOKING_STAGES: tuple[Stage, ...] = (
    Stage.NEED_FULL_NAME, Stage.NEED_PHONE, Stage.NEED_EMAIL, Stage.NEED_ADDRESS,
    Stage.NEED_BOOKING_POSTCODE, Stage.NEED_DATE, Stage.NEED_TIME,
)

# Booking stage -> BookingDraft / SlotManager field.
BOOKING_STAGE_FIELDS: dict[Stage, str] = {
    Stage.NEED_FULL_NAME: "full_name",
    Stage.NEED_PHONE: "phone",
    Stage.NEED_EMAIL: "email",
    Stage.NEED_ADDRESS: "address",
    Stage.NEED_BOOKING_POSTCODE: "postcode",
    Stage.NEED_DATE: "preferred_date",
    Stage.NEED_TIME: "preferred_time",
}

# Completeness gate item -> the stage that collects it.
GATE_STAGES: dict[str, Stage] = {
    quote_rules.CATEGORY: Stage.NEED_CATEGORY,
    quote_rules.SERVICE_TYPE: Stage.NEED_SERVICE_TYPE,
    quote_rules.JOB_TYPE: Stage.NEED_JOB_TYPE,
    quote_rules.PROPERTY_TYPE: Stage.NEED_PROPERTY_TYPE,
    quote_rules.LOCATION: Stage.NEED_POSTCODE,
    quote_rules.ROOMS: Stage.NEED_ROOMS,
    quote_rules.HOURS: Stage.NEED_HOURS,
    quote_rules.FREQUENCY: Stage.NEED_FREQUENCY,
    quote_rules.EXTRAS: Stage.NEED_EXTRA_QUANTITY,
}


@dataclass
class Transition:
    """A single valid stage transition."""
    from_stage: Stage
    to_stage: Stage
    trigger: Trigger
    guard: Optional[Callable[[CallSession], bool]] = None


@dataclass
class StageEntry:
    """Recorded history entry for a stage visit."""
    stage: Stage
    entered_at: datetime
    trigger: Optional[Trigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current stage."""


def _postcode_needs_readback(session: CallSession) -> bool:
    return bool(session.quote.postcode) and not session.postcode_confirmed


def _gate_routes_to(stage: Stage) -> Callable[[CallSession], bool]:
    def guard(session: CallSession) -> bool:
        missing = quote_rules.first_missing_field(session.quote)
        return missing is not None and GATE_STAGES[missing] == stage
    return guard


def _gate_passes(session: CallSession) -> bool:
    return quote_rules.is_quote_complete(session.quote)


def _chain(stages: tuple[Stage, ...], end: Stage) -> list[Transition]:
    """SLOT_FILLED transitions through ``stages`` in order, then to ``end``."""
    targets = stages[1:] + (end,)
    return [Transition(a, b, Trigger.SLOT_FILLED) for a, b in zip(stages, targets)]


class ConversationStateMachine:
    """
    Deterministic stage machine for a single call.

    Conditional stages (job type, toilets, kitchens, hours, frequency,
    booking postcode) stay in the linear chain; the orchestrator skips
    through any stage that is already satisfied or does not apply.
    """

    TRANSITIONS: list[Transition] = [
        # --- Quote: what and where ---
        *_chain((Stage.NEED_CATEGORY, Stage.NEED_SERVICE_TYPE, Stage.NEED_JOB_TYPE),
                Stage.NEED_PROPERTY_TYPE),
        Transition(Stage.NEED_PROPERTY_TYPE, Stage.CONFIRM_PROPERTY_TYPE,
                   Trigger.NEEDS_CONFIRMATION),
        Transition(Stage.NEED_PROPERTY_TYPE, Stage.NEED_POSTCODE, Trigger.SLOT_FILLED),
        Transition(Stage.CONFIRM_PROPERTY_TYPE, Stage.NEED_POSTCODE, Trigger.SLOT_FILLED),
        Transition(Stage.CONFIRM_PROPERTY_TYPE, Stage.NEED_PROPERTY_TYPE, Trigger.REJECTED),

        # --- Postcode with read-back and fallback ---
        Transition(Stage.NEED_POSTCODE, Stage.CONFIRM_POSTCODE, Trigger.SLOT_FILLED,
                   _postcode_needs_readback),
        Transition(Stage.NEED_POSTCODE, Stage.NEED_ROOMS, Trigger.SLOT_FILLED),
        Transition(Stage.NEED_POSTCODE, Stage.POSTCODE_FALLBACK, Trigger.POSTCODE_FAILED),
        Transition(Stage.CONFIRM_POSTCODE, Stage.NEED_ROOMS, Trigger.SLOT_FILLED),
        Transition(Stage.CONFIRM_POSTCODE, Stage.NEED_POSTCODE, Trigger.REJECTED),
        Transition(Stage.CONFIRM_POSTCODE, Stage.POSTCODE_FALLBACK, Trigger.POSTCODE_FAILED),
        Transition(Stage.POSTCODE_FALLBACK, Stage.NEED_ROOMS, Trigger.SLOT_FILLED),

        # --- Quote: size, time and extras ---
        *_chain((Stage.NEED_ROOMS, Stage.NEED_TOILETS, Stage.NEED_KITCHENS, Stage.NEED_HOURS,
                 Stage.NEED_FREQUENCY, Stage.NEED_EXTRAS, Stage.NEED_EXTRA_QUANTITY),
                Stage.CONFIRM_QUOTE),

        # --- Completeness gate and read-back ---
        *[Transition(Stage.CONFIRM_QUOTE, stage, Trigger.GATE_BLOCKED, _gate_routes_to(stage))
          for stage in GATE_STAGES.values()],
        Transition(Stage.CONFIRM_QUOTE, Stage.PRICING_IN_FLIGHT, Trigger.QUOTE_CONFIRMED,
                   _gate_passes),
        Transition(Stage.CONFIRM_QUOTE, Stage.CONFIRM_POSTCODE, Trigger.NEEDS_CONFIRMATION,
                   _postcode_needs_readback),
        Transition(Stage.CONFIRM_QUOTE, Stage.CORRECTING, Trigger.CORRECTION_REQUESTED),
        Transition(Stage.CORRECTING, Stage.CONFIRM_QUOTE, Trigger.SLOT_FILLED),

        # --- Pricing result ---
        Transition(Stage.PRICING_IN_FLIGHT, Stage.OFFER_BOOKING, Trigger.PRICING_SUCCEEDED),
        Transition(Stage.PRICING_IN_FLIGHT, Stage.NEED_POSTCODE, Trigger.PRICING_FAILED),
        Transition(Stage.PRICING_IN_FLIGHT, Stage.CALLBACK_NAME, Trigger.CALLBACK_REQUIRED),
        Transition(Stage.PRICING_IN_FLIGHT, Stage.CONFIRM_QUOTE, Trigger.GATE_BLOCKED),

        # --- Booking offer ---
        Transition(Stage.OFFER_BOOKING, Stage.NEED_FULL_NAME, Trigger.BOOKING_ACCEPTED),
        Transition(Stage.OFFER_BOOKING, Stage.ENDED, Trigger.BOOKING_DECLINED),
        Transition(Stage.OFFER_BOOKING, Stage.CORRECTING, Trigger.CORRECTION_REQUESTED),

        # --- Booking details ---
        *_chain(BOOKING_STAGES, Stage.BOOKING_IN_FLIGHT),
        Transition(Stage.BOOKING_IN_FLIGHT, Stage.ENDED, Trigger.BOOKING_SUCCEEDED),
        Transition(Stage.BOOKING_IN_FLIGHT, Stage.NEED_DATE, Trigger.BOOKING_FAILED),
        Transition(Stage.BOOKING_IN_FLIGHT, Stage.ENDED, Trigger.BOOKING_EXHAUSTED),

        # --- Manual callback ---
        Transition(Stage.CALLBACK_NAME, Stage.CALLBACK_PHONE, Trigger.SLOT_FILLED),
        Transition(Stage.CALLBACK_PHONE, Stage.ENDED, Trigger.SLOT_FILLED),
    ]

    def __init__(self, initial: Stage = Stage.NEED_CATEGORY) -> None:
        self._current_stage = initial
        self._history: list[StageEntry] = [
            StageEntry(stage=initial, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_stage(self) -> Stage:
        return self._current_stage

    def _find(self, trigger: Trigger, session: Optional[CallSession]) -> Optional[Transition]:
        for t in self.TRANSITIONS:
            if t.from_stage == self._current_stage and t.trigger == trigger:
                if t.guard is not None and (session is None or not t.guard(session)):
                    continue
                return t
        return None

    def can_transition(self, trigger: Trigger, session: Optional[CallSession] = None) -> bool:
        return self._find(trigger, session) is not None

    def transition(self, trigger: Trigger, session: Optional[CallSession] = None) -> Stage:
        """
        Execute a stage transition.

        Args:
            trigger: The event triggering the transition.
            session: The call, passed to transition guards.

        Returns:
            The new stage.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        t = self._find(trigger, session)
        if t is None:
            valid = [trig.value for trig in self.get_valid_triggers()]
            raise InvalidTransitionError(
                f"No valid transition from '{self._current_stage.value}' "
                f"with trigger '{trigger.value}'. Valid triggers: {valid}"
            )

        old_stage = self._current_stage
        self._current_stage = t.to_stage
        self._history.append(StageEntry(
            stage=self._current_stage,
            entered_at=datetime.now(timezone.utc),
            trigger=trigger,
        ))
        logger.debug(
            "Stage transition: %s -> %s (trigger: %s)",
            old_stage.value, self._current_stage.value, trigger.value,
        )
        return self._current_stage

    def get_valid_triggers(self) -> list[Trigger]:
        """Return all triggers defined from the current stage, ignoring guards."""
        seen: list[Trigger] = []
        for t in self.TRANSITIONS:
            if t.from_stage == self._current_stage and t.trigger not in seen:
                seen.append(t.trigger)
        return seen

    def get_history(self) -> list[StageEntry]:
        """Return the full stage transition history."""
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of stage names visited."""
        return [entry.stage.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_stage == Stage.ENDED
