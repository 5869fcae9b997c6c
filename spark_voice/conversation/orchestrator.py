"""
Dialogue orchestrator: one caller utterance in, one spoken prompt out.

Per turn:
1. the current stage's handler interprets the utterance deterministically,
2. a passive pass picks up quote details mentioned in passing,
3. the optional AI merge backfills empty quote fields,
4. the call settles: stages that are already satisfied or do not apply
   are skipped, and pricing/booking run when their stage is reached,
5. the prompt is built from any lead-in lines plus the current question,
   with the currency lock applied to every segment.

No exception raised by caller input ends a call; the worst case is the
same question asked again.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from spark_voice.config import AppConfig, settings
from spark_voice.conversation import extractors, quote_rules
from spark_voice.conversation.coordinator import ActionCoordinator
from spark_voice.conversation.delta_merger import DeltaMerger
from spark_voice.conversation.guardrails import GuardrailPipeline
from spark_voice.conversation.postcode import extract_uk_postcode
from spark_voice.conversation.session_store import InMemorySessionStore, SessionStore
from spark_voice.conversation.slot_manager import SlotManager
from spark_voice.conversation.state_machine import (
    BOOKING_STAGE_FIELDS,
    QUOTE_STAGES,
    Stage,
    Trigger,
)
from spark_voice.logging_context import get_call_logger, set_call_id
from spark_voice.prompts import prompt_templates as prompts
from spark_voice.schemas.booking_schema import BookingDraft
from spark_voice.schemas.quote_schema import (
    FALLBACK_LOCATION_NOTE,
    POSTCODE_FAILED_NOTE,
    PREMISES_SIZE_NOTE,
)
from spark_voice.schemas.session_schema import CallOutcome, CallSession
from spark_voice.tools.booking import BookingStatus
from spark_voice.tools.pricing import PricingStatus
from spark_voice.tools.services import describe_service_options, get_extra_unit

logger = get_call_logger(__name__)

DEEP_CLEAN = "Deep Clean"

_POSTCODE_STAGES = (Stage.NEED_POSTCODE, Stage.CONFIRM_POSTCODE, Stage.POSTCODE_FALLBACK)
_SCOPE_STAGES = (
    Stage.NEED_CATEGORY, Stage.NEED_SERVICE_TYPE, Stage.NEED_JOB_TYPE, Stage.NEED_PROPERTY_TYPE,
)

_CHANGE_REQUEST = re.compile(
    r"\b(?:change|actually|wrong|not right|correction|instead|hang on|hold on)\b", re.IGNORECASE
)
_PREMISES_SIZE = re.compile(
    r"\d|\b(?:one|two|three|four|five|six|seven|eight|nine|ten|twenty|thirty|forty|fifty|"
    r"hundred|thousand|small|medium|large|big|tiny|huge|square|sq|feet|foot|metres|meters|"
    r"floors?|rooms?|desks?|open plan)\b",
    re.IGNORECASE,
)

Handler = Callable[[CallSession, str, list[str]], None]


@dataclass
class TurnResult:
    """What the telephony layer should do next."""
    prompt: str
    expect_reply: bool = True


class DialogueOrchestrator:
    """Runs the quote and booking call flow for any number of concurrent calls."""

    def __init__(
        self,
        coordinator: ActionCoordinator,
        store: Optional[SessionStore] = None,
        merger: Optional[DeltaMerger] = None,
        guardrails: Optional[GuardrailPipeline] = None,
        config: AppConfig = settings,
    ) -> None:
        self.coordinator = coordinator
        self.store = store if store is not None else InMemorySessionStore()
        self.guardrails = guardrails or GuardrailPipeline()
        self.merger = merger
        self.limits = config.guardrails
        self._handlers: dict[Stage, Handler] = {
            Stage.NEED_CATEGORY: self._handle_category,
            Stage.NEED_SERVICE_TYPE: self._handle_service_type,
            Stage.NEED_JOB_TYPE: self._handle_job_type,
            Stage.NEED_PROPERTY_TYPE: self._handle_property_type,
            Stage.CONFIRM_PROPERTY_TYPE: self._handle_confirm_property_type,
            Stage.NEED_POSTCODE: self._handle_postcode,
            Stage.CONFIRM_POSTCODE: self._handle_confirm_postcode,
            Stage.POSTCODE_FALLBACK: self._handle_postcode_fallback,
            Stage.NEED_ROOMS: self._handle_rooms,
            Stage.NEED_TOILETS: self._handle_toilets,
            Stage.NEED_KITCHENS: self._handle_kitchens,
            Stage.NEED_HOURS: self._handle_hours,
            Stage.NEED_FREQUENCY: self._handle_frequency,
            Stage.NEED_EXTRAS: self._handle_extras,
            Stage.NEED_EXTRA_QUANTITY: self._handle_extra_quantity,
            Stage.CONFIRM_QUOTE: self._handle_confirm_quote,
            Stage.CORRECTING: self._handle_correcting,
            Stage.OFFER_BOOKING: self._handle_offer_booking,
            Stage.CALLBACK_NAME: self._handle_callback_name,
            Stage.CALLBACK_PHONE: self._handle_callback_phone,
        }
        for stage in BOOKING_STAGE_FIELDS:
            self._handlers[stage] = self._handle_booking_field

    # ------------------------------------------------------------------ #
    # Call lifecycle
    # ------------------------------------------------------------------ #

    def start_call(self, call_id: str) -> TurnResult:
        set_call_id(call_id)
        session = CallSession(call_id=call_id)
        self.store.put(session)
        logger.info("Call started")
        return self._render(session, [prompts.GREETING])

    def handle_utterance(self, call_id: str, text: Optional[str]) -> TurnResult:
        set_call_id(call_id)
        session = self.store.get(call_id)
        if session is None:
            logger.info("No session for call, starting a new one")
            session = CallSession(call_id=call_id)
            self.store.put(session)

        if session.machine.is_terminal():
            return self._render(session, [])

        text = (text or "").strip()
        if not text:
            return self._handle_silence(session)

        session.silence_turns = 0
        session.transcript.append(text)
        lead: list[str] = []

        stage = session.stage
        handler = self._handlers.get(stage)
        if handler is not None:
            handler(session, text, lead)
        if stage in QUOTE_STAGES:
            self._passive_extract(session, stage, text)
            self._merge_ai(session, text)
        self._enforce_quote_rules(session)
        self._sync_extra_queue(session, lead)
        self._settle(session, lead)

        self._write_back(session)
        return self._render(session, lead)

    def end_call(self, call_id: str) -> Optional[CallSession]:
        """Drop the session; returns it for logging or archiving."""
        set_call_id(call_id)
        session = self.store.delete(call_id)
        if session is not None:
            logger.info(
                "Call ended at stage %s, outcome=%s, turns=%d",
                session.stage.value,
                session.outcome.value if session.outcome else None,
                len(session.transcript),
            )
            if session.booking_slots is not None:
                logger.info("Booking slots: %s", session.booking_slots.get_stats())
        return session

    # ------------------------------------------------------------------ #
    # Turn helpers
    # ------------------------------------------------------------------ #

    def _write_back(self, session: CallSession) -> None:
        """Store the turn's result unless the call ended while it ran."""
        if not self.store.put_if_present(session):
            logger.info("Call ended mid-turn, discarding result at stage %s", session.stage.value)

    def _retry(self, session: CallSession) -> int:
        return session.bump_attempts(session.stage)

    def _handle_silence(self, session: CallSession) -> TurnResult:
        session.silence_turns += 1
        if session.silence_turns >= self.limits.max_silence_turns:
            session.silence_turns = 0
            lead = [prompts.OPENING_LINE]
        else:
            lead = [prompts.NO_INPUT]
        self._write_back(session)
        return self._render(session, lead)

    def _passive_extract(self, session: CallSession, stage: Stage, text: str) -> None:
        """Pick up low-risk quote details the caller mentioned in passing."""
        if stage in _POSTCODE_STAGES:
            return
        quote = session.quote
        if not quote.service_category:
            category = extractors.extract_category(text)
            if category:
                self._set_category(session, category)
        if quote.service_category and not quote.service_type:
            service_type = extractors.extract_service_type(text, quote.service_category)
            if service_type:
                quote.set_service_type(service_type)
        if not quote.job_type:
            job_type = extractors.extract_job_type(text)
            if job_type:
                quote.job_type = job_type
        if not quote.visit_frequency_per_week:
            frequency = extractors.extract_visit_frequency(text)
            if frequency:
                quote.visit_frequency_per_week = frequency
        if quote.is_domestic and not quote.areas_scope and stage in _SCOPE_STAGES:
            scope = extractors.extract_areas_scope(text)
            if scope:
                quote.areas_scope = scope
        self._note_extras(session, text)

    def _merge_ai(self, session: CallSession, text: str) -> None:
        if self.merger is None or not self.merger.enabled:
            return
        hold = (
            session.pending_property_type is not None
            or self._said_unspecified_house(session)
            or self.guardrails.needs_property_confirmation(text, session.property_confirmation_done)
        )
        self.merger.apply(session.quote, text, hold_property_type=hold)

    def _said_unspecified_house(self, session: CallSession) -> bool:
        """A bare "house" stays open until the caller picks which kind."""
        return any(extractors.mentions_unspecified_house(t) for t in session.transcript)

    def _enforce_quote_rules(self, session: CallSession) -> None:
        quote = session.quote
        quote.clear_opposite_branch()
        if quote.is_domestic and quote.areas_scope and quote.domestic_service_type != DEEP_CLEAN:
            quote.domestic_service_type = DEEP_CLEAN

    def _set_category(self, session: CallSession, category: str) -> None:
        if session.quote.service_category:
            return
        session.quote.service_category = category
        session.quote.clear_opposite_branch()
        logger.info("Category set to %s", category)

    def _note_extras(self, session: CallSession, text: str) -> list[str]:
        """Queue newly mentioned extras; inline quantities are taken as stated."""
        quote = session.quote
        quantities = extractors.extract_extra_quantities(text)
        found = extractors.extract_extras(text)
        for name in found:
            if name in quantities:
                if quantities[name] == 0:
                    quote.remove_extra(name)
                else:
                    quote.upsert_extra(name, quantities[name])
            elif quote.get_extra(name) is None:
                quote.upsert_extra(name, 0)
        return found

    def _sync_extra_queue(self, session: CallSession, lead: list[str]) -> None:
        """Keep the FIFO queue equal to the extras still awaiting a quantity."""
        pending = session.quote.unconfirmed_extras()
        queue = [name for name in session.pending_extra_queue if name in pending]
        queue += [name for name in pending if name not in queue]
        session.pending_extra_queue = queue
        if session.quote.extras and not session.extras_impact_acknowledged:
            session.extras_impact_acknowledged = True
            lead.append(prompts.EXTRAS_IMPACT)

    # ------------------------------------------------------------------ #
    # Settling: skip satisfied stages and run external actions
    # ------------------------------------------------------------------ #

    def _settle(self, session: CallSession, lead: list[str]) -> None:
        machine = session.machine
        for _ in range(len(Stage) * 2):
            stage = machine.current_stage
            if stage == Stage.CONFIRM_QUOTE:
                missing = quote_rules.first_missing_field(session.quote)
                if missing is None:
                    if not machine.can_transition(Trigger.NEEDS_CONFIRMATION, session):
                        return
                    logger.info("Postcode changed at read-back, confirming it first")
                    machine.transition(Trigger.NEEDS_CONFIRMATION, session)
                    continue
                logger.info("Quote incomplete, asking again for %s", missing)
                machine.transition(Trigger.GATE_BLOCKED, session)
            elif stage == Stage.PRICING_IN_FLIGHT:
                self._run_pricing(session, lead)
            elif stage == Stage.BOOKING_IN_FLIGHT:
                self._run_booking(session, lead)
            elif self._is_satisfied(session, stage):
                machine.transition(Trigger.SLOT_FILLED, session)
            else:
                return
        logger.error("Stage settling did not converge at %s", machine.current_stage.value)

    def _is_satisfied(self, session: CallSession, stage: Stage) -> bool:
        quote = session.quote
        if stage == Stage.NEED_CATEGORY:
            return bool(quote.service_category)
        if stage == Stage.NEED_SERVICE_TYPE:
            return bool(quote.service_type)
        if stage == Stage.NEED_JOB_TYPE:
            return not quote_rules.needs_job_type(quote) or bool(quote.job_type)
        if stage in (Stage.NEED_PROPERTY_TYPE, Stage.CONFIRM_PROPERTY_TYPE):
            return bool(quote.property_type) and session.pending_property_type is None
        if stage == Stage.NEED_POSTCODE:
            return quote_rules.has_location(quote)
        if stage == Stage.CONFIRM_POSTCODE:
            return session.postcode_confirmed or (
                not quote.postcode and quote_rules.has_location(quote)
            )
        if stage == Stage.POSTCODE_FALLBACK:
            return quote.has_note(FALLBACK_LOCATION_NOTE)
        if stage == Stage.NEED_ROOMS:
            return quote_rules.has_room_details(quote)
        if stage == Stage.NEED_TOILETS:
            return not quote_rules.needs_toilets(quote) or quote.toilets > 0 or session.toilets_answered
        if stage == Stage.NEED_KITCHENS:
            return (
                not quote_rules.needs_kitchens(quote) or quote.kitchens > 0 or session.kitchens_answered
            )
        if stage == Stage.NEED_HOURS:
            return not quote_rules.needs_hours(quote) or quote.preferred_hours > 0
        if stage == Stage.NEED_FREQUENCY:
            return not quote_rules.needs_frequency(quote) or quote.visit_frequency_per_week > 0
        if stage == Stage.NEED_EXTRAS:
            return session.extras_answered or bool(quote.extras)
        if stage == Stage.NEED_EXTRA_QUANTITY:
            return not quote.unconfirmed_extras()
        if stage in BOOKING_STAGE_FIELDS:
            return session.booking is not None and bool(
                getattr(session.booking, BOOKING_STAGE_FIELDS[stage]).strip()
            )
        if stage == Stage.CALLBACK_NAME:
            return bool(session.callback.get("name"))
        if stage == Stage.CALLBACK_PHONE:
            return bool(session.callback.get("phone"))
        return False

    def _run_pricing(self, session: CallSession, lead: list[str]) -> None:
        outcome = self.coordinator.request_price(session)
        machine = session.machine
        if outcome.status == PricingStatus.OK and outcome.result is not None:
            lead.append(prompts.build_price_line(outcome.result))
            machine.transition(Trigger.PRICING_SUCCEEDED, session)
        elif outcome.status == PricingStatus.INCOMPLETE:
            machine.transition(Trigger.GATE_BLOCKED, session)
        elif outcome.status == PricingStatus.FAILED and outcome.retry_allowed:
            # Without a postcode the retry goes straight to the read-back.
            if session.quote.has_note(FALLBACK_LOCATION_NOTE):
                lead.append(prompts.PRICING_APOLOGY_RECHECK)
            else:
                lead.append(prompts.PRICING_APOLOGY)
            machine.transition(Trigger.PRICING_FAILED, session)
        else:
            lead.append(prompts.PRICING_CALLBACK)
            self._start_callback(session)
            machine.transition(Trigger.CALLBACK_REQUIRED, session)

    def _run_booking(self, session: CallSession, lead: list[str]) -> None:
        outcome = self.coordinator.submit_booking(session)
        machine = session.machine
        if outcome.status == BookingStatus.CONFIRMED:
            session.outcome = CallOutcome.BOOKED
            lead.append(prompts.build_booking_confirmation(outcome.reference))
            machine.transition(Trigger.BOOKING_SUCCEEDED, session)
        elif outcome.retry_allowed:
            lead.append(prompts.BOOKING_RETRY)
            machine.transition(Trigger.BOOKING_FAILED, session)
        else:
            session.outcome = CallOutcome.CALLBACK_REQUESTED
            lead.append(prompts.build_booking_callback())
            machine.transition(Trigger.BOOKING_EXHAUSTED, session)

    def _start_callback(self, session: CallSession) -> None:
        session.booking_slots = SlotManager()
        session.callback = {}

    # ------------------------------------------------------------------ #
    # Quote stage handlers
    # ------------------------------------------------------------------ #

    def _handle_category(self, session: CallSession, text: str, lead: list[str]) -> None:
        category = extractors.extract_category(text)
        if category is None:
            self._retry(session)
            return
        self._set_category(session, category)

    def _handle_service_type(self, session: CallSession, text: str, lead: list[str]) -> None:
        service_type = extractors.extract_service_type(text, session.quote.service_category)
        if service_type is None:
            self._retry(session)
            return
        session.quote.set_service_type(service_type)

    def _handle_job_type(self, session: CallSession, text: str, lead: list[str]) -> None:
        job_type = extractors.extract_job_type(text)
        if job_type is None:
            self._retry(session)
            return
        session.quote.job_type = job_type

    def _handle_property_type(self, session: CallSession, text: str, lead: list[str]) -> None:
        property_type = extractors.extract_property_type(text, session.quote.service_category)
        if property_type is None:
            self._retry(session)
            return
        if self.guardrails.needs_property_confirmation(text, session.property_confirmation_done):
            session.pending_property_type = property_type
            session.machine.transition(Trigger.NEEDS_CONFIRMATION, session)
            return
        session.quote.set_property_type(property_type)

    def _handle_confirm_property_type(
        self, session: CallSession, text: str, lead: list[str]
    ) -> None:
        pending = session.pending_property_type
        restated = extractors.extract_property_type(text, session.quote.service_category)
        answer = extractors.extract_yes_no(text)

        if restated is not None and not (answer is False and restated == pending):
            self._accept_property_type(session, restated)
        elif answer is True and pending:
            self._accept_property_type(session, pending)
        elif answer is False or self._retry(session) >= self.limits.max_slot_retries:
            session.pending_property_type = None
            session.property_confirmation_done = True
            session.machine.transition(Trigger.REJECTED, session)

    def _accept_property_type(self, session: CallSession, value: str) -> None:
        session.quote.set_property_type(value)
        session.pending_property_type = None
        session.property_confirmation_done = True
        logger.info("Property type confirmed as %s", value)

    def _handle_postcode(self, session: CallSession, text: str, lead: list[str]) -> None:
        postcode = extract_uk_postcode(text)
        if postcode is not None:
            session.quote.postcode = postcode
            session.postcode_confirmed = False
            return
        attempts = session.bump_attempts(Stage.NEED_POSTCODE)
        logger.info("Postcode not recognised (attempt %d)", attempts)
        if attempts >= self.limits.max_postcode_attempts:
            self._enter_postcode_fallback(session, text)

    def _enter_postcode_fallback(self, session: CallSession, text: str) -> None:
        session.quote.postcode = ""
        session.quote.add_note(f'{POSTCODE_FAILED_NOTE} Caller said: "{text}".')
        logger.warning("Postcode capture failed, switching to fallback location")
        session.machine.transition(Trigger.POSTCODE_FAILED, session)

    def _handle_confirm_postcode(self, session: CallSession, text: str, lead: list[str]) -> None:
        quote = session.quote
        answer = extractors.extract_yes_no(text)
        restated = extract_uk_postcode(text)

        if restated is not None and restated != quote.postcode:
            quote.postcode = restated
            return
        if answer is True or restated == quote.postcode:
            session.postcode_confirmed = True
            return
        if answer is False:
            quote.postcode = ""
            attempts = session.bump_attempts(Stage.NEED_POSTCODE)
            if attempts >= self.limits.max_postcode_attempts:
                self._enter_postcode_fallback(session, text)
            else:
                session.machine.transition(Trigger.REJECTED, session)
            return
        if self._retry(session) >= self.limits.max_slot_retries:
            session.postcode_confirmed = True

    def _handle_postcode_fallback(self, session: CallSession, text: str, lead: list[str]) -> None:
        session.quote.add_note(f"{FALLBACK_LOCATION_NOTE} {text}.")
        lead.append(prompts.FALLBACK_ACK)

    def _handle_rooms(self, session: CallSession, text: str, lead: list[str]) -> None:
        quote = session.quote
        counts = extractors.extract_room_counts(text)
        if "toilets" in counts:
            quote.toilets = counts["toilets"]
            session.toilets_answered = True
        if "kitchens" in counts:
            quote.kitchens = counts["kitchens"]
            session.kitchens_answered = True

        if quote.is_commercial:
            if _PREMISES_SIZE.search(text) or self._retry(session) >= self.limits.max_slot_retries:
                quote.add_note(f"{PREMISES_SIZE_NOTE} {text}.")
            return

        if counts.get("bedrooms"):
            quote.bedrooms = counts["bedrooms"]
        if counts.get("bathrooms"):
            quote.bathrooms = counts["bathrooms"]
        if "bedrooms" not in counts and "bathrooms" not in counts:
            missing = self._missing_room(session)
            count = extractors.extract_count(text)
            if missing and count:
                setattr(quote, missing, count)
        if not quote_rules.has_room_details(quote):
            self._retry(session)

    def _missing_room(self, session: CallSession) -> Optional[str]:
        """The one domestic count still needed, or None if both (or neither) are."""
        quote = session.quote
        need_bedrooms = quote.bedrooms < 1 and quote.domestic_property_type != quote_rules.STUDIO_FLAT
        need_bathrooms = quote.bathrooms < 1
        if need_bedrooms and not need_bathrooms:
            return "bedrooms"
        if need_bathrooms and not need_bedrooms:
            return "bathrooms"
        return None

    def _handle_toilets(self, session: CallSession, text: str, lead: list[str]) -> None:
        count = extractors.extract_room_counts(text).get("toilets")
        if count is None:
            count = extractors.extract_count(text)
        if count is not None:
            session.quote.toilets = count
            session.toilets_answered = True
        elif self._retry(session) >= self.limits.max_slot_retries:
            session.toilets_answered = True

    def _handle_kitchens(self, session: CallSession, text: str, lead: list[str]) -> None:
        count = extractors.extract_room_counts(text).get("kitchens")
        if count is None:
            count = extractors.extract_count(text)
        if count is None:
            answer = extractors.extract_yes_no(text)
            if answer is True or extractors.mentions_kitchen(text):
                count = 1
            elif answer is False:
                count = 0
        if count is not None:
            session.quote.kitchens = count
            session.kitchens_answered = True
        elif self._retry(session) >= self.limits.max_slot_retries:
            session.kitchens_answered = True

    def _handle_hours(self, session: CallSession, text: str, lead: list[str]) -> None:
        quote = session.quote
        hours = extractors.extract_hours(text)
        if hours is None and not session.hours_offer_pending:
            count = extractors.extract_count(text)
            hours = float(count) if count else None
        if hours:
            quote.preferred_hours = hours
            session.hours_offer_pending = False
            return

        if session.hours_offer_pending:
            answer = extractors.extract_yes_no(text)
            if answer is True:
                quote.preferred_hours = quote_rules.minimum_hours(quote)
                session.hours_offer_pending = False
            elif answer is False:
                session.hours_offer_pending = False
                session.reset_attempts(Stage.NEED_HOURS)
            return

        attempts = self._retry(session)
        if attempts >= self.limits.max_slot_retries and quote_rules.minimum_hours(quote) > 0:
            session.hours_offer_pending = True

    def _handle_frequency(self, session: CallSession, text: str, lead: list[str]) -> None:
        frequency = extractors.extract_visit_frequency(text)
        if frequency is not None:
            session.quote.visit_frequency_per_week = frequency
            return
        if extractors.is_ambiguous_frequency(text):
            lead.append(prompts.FREQUENCY_CLARIFY)
        self._retry(session)

    def _handle_extras(self, session: CallSession, text: str, lead: list[str]) -> None:
        if self._note_extras(session, text):
            session.extras_answered = True
            return
        if extractors.declines_extras(text) or extractors.extract_yes_no(text) is False:
            session.extras_answered = True
            return
        if self._retry(session) >= self.limits.max_slot_retries:
            session.extras_answered = True

    def _handle_extra_quantity(self, session: CallSession, text: str, lead: list[str]) -> None:
        quote = session.quote
        if not session.pending_extra_queue:
            return
        name = session.pending_extra_queue[0]

        stated = extractors.extract_extra_quantities(text)
        self._note_extras(session, text)
        if name in stated:
            session.reset_attempts(Stage.NEED_EXTRA_QUANTITY)
            return

        count = extractors.extract_count(text)
        if count is None:
            if self._retry(session) >= self.limits.max_slot_retries:
                quote.remove_extra(name)
                quote.add_note(f"{name} mentioned but quantity not confirmed.")
                session.reset_attempts(Stage.NEED_EXTRA_QUANTITY)
            return

        if count == 0:
            quote.remove_extra(name)
        else:
            quote.upsert_extra(name, count)
        session.reset_attempts(Stage.NEED_EXTRA_QUANTITY)

    # ------------------------------------------------------------------ #
    # Read-back, corrections and booking offer
    # ------------------------------------------------------------------ #

    def _handle_confirm_quote(self, session: CallSession, text: str, lead: list[str]) -> None:
        answer = extractors.extract_yes_no(text)
        if answer is True and not _CHANGE_REQUEST.search(text):
            session.machine.transition(Trigger.QUOTE_CONFIRMED, session)
            return
        if answer is False or _CHANGE_REQUEST.search(text):
            if self._apply_correction(session, text):
                self.coordinator.invalidate_quote(session)
                return
            session.machine.transition(Trigger.CORRECTION_REQUESTED, session)
            return
        if self._apply_correction(session, text):
            self.coordinator.invalidate_quote(session)
            return
        self._retry(session)

    def _handle_correcting(self, session: CallSession, text: str, lead: list[str]) -> None:
        if self._apply_correction(session, text):
            self.coordinator.invalidate_quote(session)
            session.reset_attempts(Stage.CORRECTING)
            session.machine.transition(Trigger.SLOT_FILLED, session)
            return
        if self._retry(session) >= self.limits.max_slot_retries:
            lead.append(prompts.NOTHING_CHANGED)
            session.reset_attempts(Stage.CORRECTING)
            session.machine.transition(Trigger.SLOT_FILLED, session)

    def _apply_correction(self, session: CallSession, text: str) -> list[str]:
        """Run a correction through every extractor, overwriting stated values.

        The category stays locked; everything else the caller restates wins.
        """
        quote = session.quote
        category = quote.service_category
        changed: list[str] = []

        def update(name: str, value: object) -> None:
            if value is not None and value != getattr(quote, name):
                setattr(quote, name, value)
                changed.append(name)

        service_type = extractors.extract_service_type(text, category)
        if service_type and service_type != quote.service_type:
            quote.set_service_type(service_type)
            changed.append("service_type")
        property_type = extractors.extract_property_type(text, category)
        if property_type and property_type != quote.property_type:
            quote.set_property_type(property_type)
            changed.append("property_type")

        update("job_type", extractors.extract_job_type(text))
        update("visit_frequency_per_week", extractors.extract_visit_frequency(text))
        update("preferred_hours", extractors.extract_hours(text))

        counts = extractors.extract_room_counts(text)
        for name in ("bedrooms", "bathrooms", "toilets", "kitchens"):
            update(name, counts.get(name))

        postcode = extract_uk_postcode(text)
        if postcode and postcode != quote.postcode:
            quote.postcode = postcode
            session.postcode_confirmed = False
            changed.append("postcode")

        if quote.is_domestic:
            update("areas_scope", extractors.extract_areas_scope(text))

        before = [e.model_copy() for e in quote.extras]
        self._note_extras(session, text)
        if quote.extras != before:
            changed.append("extras")

        if changed:
            logger.info("Caller corrected %s", changed)
        return changed

    def _handle_offer_booking(self, session: CallSession, text: str, lead: list[str]) -> None:
        machine = session.machine
        if _CHANGE_REQUEST.search(text):
            changed = self._apply_correction(session, text)
            machine.transition(Trigger.CORRECTION_REQUESTED, session)
            if changed:
                self.coordinator.invalidate_quote(session)
                lead.append(prompts.QUOTE_INVALIDATED)
                machine.transition(Trigger.SLOT_FILLED, session)
            return

        answer = extractors.extract_yes_no(text)
        if answer is True:
            quote = session.quote
            session.booking = BookingDraft(postcode=quote.postcode)
            session.booking_slots = SlotManager()
            if quote.postcode:
                session.booking_slots.prefill("postcode", quote.postcode)
            logger.info("Caller accepted the price, collecting booking details")
            machine.transition(Trigger.BOOKING_ACCEPTED, session)
        elif answer is False:
            session.outcome = CallOutcome.DECLINED
            lead.append(prompts.build_decline_closing())
            logger.info("Caller declined to book")
            machine.transition(Trigger.BOOKING_DECLINED, session)
        else:
            self._retry(session)

    # ------------------------------------------------------------------ #
    # Booking and callback handlers
    # ------------------------------------------------------------------ #

    def _handle_booking_field(self, session: CallSession, text: str, lead: list[str]) -> None:
        """Validate, store and sync a booking slot into the BookingDraft."""
        field_name = BOOKING_STAGE_FIELDS[session.stage]
        value = self._collect_slot(session, field_name, text)
        if value is not None and session.booking is not None:
            setattr(session.booking, field_name, value)

    def _collect_slot(self, session: CallSession, name: str, text: str) -> Optional[str]:
        slots = session.booking_slots
        if slots is None:
            slots = session.booking_slots = SlotManager()
        ok, _ = slots.set_slot(name, text)
        if ok:
            return slots.get_slot_value(name)
        if slots.has_exceeded_retries(name):
            return slots.accept_raw(name)
        self._retry(session)
        return None

    def _handle_callback_name(self, session: CallSession, text: str, lead: list[str]) -> None:
        value = self._collect_slot(session, "full_name", text)
        if value:
            session.callback["name"] = value

    def _handle_callback_phone(self, session: CallSession, text: str, lead: list[str]) -> None:
        value = self._collect_slot(session, "phone", text)
        if not value:
            return
        session.callback["phone"] = value
        session.outcome = CallOutcome.CALLBACK_REQUESTED
        logger.info("Callback requested for %s on %s", session.callback.get("name"), value)
        lead.append(prompts.build_callback_closing())

    # ------------------------------------------------------------------ #
    # Output
    # ------------------------------------------------------------------ #

    def _render(self, session: CallSession, lead: list[str]) -> TurnResult:
        if session.machine.is_terminal():
            segments = lead or [self._closing_line(session)]
            return TurnResult(self.guardrails.lock_segments(segments), expect_reply=False)
        segments = [*lead, self._question(session)]
        return TurnResult(self.guardrails.lock_segments(segments), expect_reply=True)

    def _closing_line(self, session: CallSession) -> str:
        if session.outcome == CallOutcome.BOOKED:
            return prompts.build_booking_confirmation(None)
        if session.outcome == CallOutcome.CALLBACK_REQUESTED:
            return prompts.build_callback_closing()
        return prompts.build_decline_closing()

    def _question(self, session: CallSession) -> str:
        stage = session.stage
        quote = session.quote
        attempt = session.attempts(stage)

        if stage == Stage.NEED_SERVICE_TYPE:
            return prompts.build_question(
                stage.value, attempt,
                service_options=describe_service_options(quote.service_category),
            )
        if stage == Stage.NEED_PROPERTY_TYPE:
            if quote.is_domestic and self._said_unspecified_house(session):
                return prompts.build_question("need_property_type_house")
            return prompts.build_question(
                stage.value, attempt,
                property_options=prompts.PROPERTY_OPTIONS.get(quote.service_category, ""),
            )
        if stage == Stage.CONFIRM_PROPERTY_TYPE:
            return prompts.build_question(
                stage.value, attempt,
                property_type=(session.pending_property_type or "").lower(),
            )
        if stage == Stage.NEED_POSTCODE:
            return prompts.build_question(stage.value, session.attempts(Stage.NEED_POSTCODE))
        if stage == Stage.CONFIRM_POSTCODE:
            return prompts.build_question(stage.value, attempt, postcode=quote.postcode)
        if stage == Stage.NEED_ROOMS:
            if quote.is_commercial:
                return prompts.build_question("need_rooms_commercial", attempt)
            missing = self._missing_room(session)
            return prompts.build_question(
                f"need_rooms_{missing}" if missing else "need_rooms_domestic", attempt
            )
        if stage == Stage.NEED_HOURS and session.hours_offer_pending:
            floor = quote_rules.minimum_hours(quote)
            return prompts.build_question(
                "need_hours_minimum", minimum_hours=f"{floor:g}"
            )
        if stage == Stage.NEED_EXTRA_QUANTITY and session.pending_extra_queue:
            name = session.pending_extra_queue[0]
            return prompts.build_question(
                stage.value, attempt, extra_name=name.lower(), extra_unit=get_extra_unit(name)
            )
        if stage == Stage.CONFIRM_QUOTE:
            return prompts.build_question(
                stage.value, attempt, summary=prompts.describe_quote(quote)
            )
        return prompts.build_question(stage.value, attempt)
