"""End-to-end call flows through the dialogue orchestrator."""

from spark_voice.conversation.guardrails import POUNDS_ONLY_SENTENCE
from spark_voice.conversation.state_machine import ConversationStateMachine, Stage
from spark_voice.prompts import prompt_templates as prompts
from spark_voice.schemas.quote_schema import QuoteDraft, QuoteResult
from spark_voice.schemas.session_schema import CallOutcome
from spark_voice.tools.pricing import PricingResponse, PricingStatus
from tests.conftest import (
    CallDriver,
    FakeBooking,
    FakeExtractor,
    FakePricing,
    build_orchestrator,
    failed_booking,
    failed_pricing,
    ok_pricing,
)


class DisconnectingPricing(FakePricing):
    """Hangs the call up while the quote is being priced."""

    def __init__(self) -> None:
        super().__init__()
        self.orchestrator = None
        self.call_id = ""

    def get_quote(self, quote, idempotency_key):
        self.orchestrator.end_call(self.call_id)
        return super().get_quote(quote, idempotency_key)


def _to_confirm_quote(call: CallDriver) -> None:
    call.say(
        "it's a house",
        "deep clean",
        "semi",
        "yes, semi-detached",
        "S W 1 A 1 A A",
        "yes",
        "three bedrooms and two bathrooms",
        "one toilet",
        "no thanks",
    )


class TestGreeting:
    def test_opening_greets_and_asks_category(self, call):
        assert call.opening.expect_reply is True
        assert "TotalSpark Solutions" in call.opening.prompt
        assert "home, or for a business" in call.opening.prompt
        assert call.stage == Stage.NEED_CATEGORY

    def test_unknown_call_gets_a_fresh_session(self, orchestrator):
        turn = orchestrator.handle_utterance("CA-UNKNOWN", "it's for my flat")
        assert turn.expect_reply is True
        session = orchestrator.store.get("CA-UNKNOWN")
        assert session.quote.service_category == "domestic"


class TestDomesticQuoteFlow:
    def test_semi_detached_walkthrough(self, call):
        call.say("it's a house")
        assert call.stage == Stage.NEED_SERVICE_TYPE

        call.say("deep clean")
        assert call.stage == Stage.NEED_PROPERTY_TYPE
        assert "terraced, semi-detached or detached" in call.last.prompt

        call.say("semi")
        assert call.stage == Stage.CONFIRM_PROPERTY_TYPE
        assert "semi-detached house" in call.last.prompt
        assert call.session.quote.domestic_property_type == ""

        call.say("yes, semi-detached")
        assert call.stage == Stage.NEED_POSTCODE

        call.say("S W 1 A 1 A A")
        assert call.stage == Stage.CONFIRM_POSTCODE
        assert "SW1A 1AA" in call.last.prompt

        call.say("yes")
        assert call.stage == Stage.NEED_ROOMS

        call.say("three bedrooms and two bathrooms", "one toilet", "no thanks")
        assert call.stage == Stage.CONFIRM_QUOTE

        quote = call.session.quote
        assert quote.service_category == "domestic"
        assert quote.domestic_service_type == "Deep Clean"
        assert quote.domestic_property_type == "Semi-detached house"
        assert quote.postcode == "SW1A 1AA"
        assert (quote.bedrooms, quote.bathrooms, quote.toilets) == (3, 2, 1)
        assert quote.commercial_service_type == ""

    def test_flat_fee_service_skips_job_type_and_hours(self, call):
        _to_confirm_quote(call)
        trace = call.session.machine.get_state_trace()
        assert Stage.NEED_HOURS.value in trace  # passed through, never asked
        assert call.session.attempts(Stage.NEED_JOB_TYPE) == 0
        assert call.session.quote.preferred_hours == 0

    def test_confirmed_quote_is_priced_and_booking_offered(self, call, pricing):
        _to_confirm_quote(call)
        turn = call.say("yes")
        assert call.stage == Stage.OFFER_BOOKING
        assert "£120" in turn.prompt
        assert len(pricing.calls) == 1
        snapshot, key = pricing.calls[0]
        assert snapshot.postcode == "SW1A 1AA"
        assert key == "CA-TEST-001-quote-1"

    def test_rejected_property_type_is_asked_again(self, call):
        call.say("it's a house", "deep clean", "terraced")
        assert call.stage == Stage.CONFIRM_PROPERTY_TYPE
        call.say("no")
        assert call.stage == Stage.NEED_PROPERTY_TYPE
        call.say("it's detached")
        assert call.session.quote.domestic_property_type == "Detached house"
        assert call.stage == Stage.NEED_POSTCODE

    def test_details_given_early_are_not_asked_again(self, call):
        call.say("I need an end of tenancy clean for my flat")
        # Category and service type in one go.
        assert call.session.quote.domestic_service_type == "End of Tenancy Clean"
        assert call.stage == Stage.NEED_PROPERTY_TYPE
        call.say("a flat")
        assert call.stage == Stage.NEED_POSTCODE

    def test_areas_scope_forces_deep_clean(self, call):
        call.say("it's my flat, just the kitchen and bathroom please")
        quote = call.session.quote
        assert quote.areas_scope == "kitchen and bathroom"
        assert quote.domestic_service_type == "Deep Clean"


class TestHourlyServices:
    def test_regular_domestic_collects_hours_and_frequency(self, call):
        call.say("home", "regular cleaning")
        assert call.session.quote.job_type == "regular"
        assert call.stage == Stage.NEED_PROPERTY_TYPE
        call.say("a flat", "N1 9GU", "yes")
        assert call.stage == Stage.NEED_ROOMS
        call.say("two bedrooms one bathroom")
        assert call.stage == Stage.NEED_HOURS
        call.say("three hours")
        assert call.stage == Stage.NEED_FREQUENCY
        call.say("every other week")
        assert call.session.quote.visit_frequency_per_week == 0.5
        assert call.stage == Stage.NEED_EXTRAS

    def test_ambiguous_frequency_is_clarified(self, call):
        call.say("home", "regular cleaning", "a flat", "N1 9GU", "yes",
                 "two bedrooms one bathroom", "three hours")
        turn = call.say("oh just regularly")
        assert call.stage == Stage.NEED_FREQUENCY
        assert prompts.FREQUENCY_CLARIFY in turn.prompt

    def test_minimum_hours_offered_after_retries(self, call):
        call.say("home", "disinfection", "one-off", "a flat", "N1 9GU", "yes",
                 "two bedrooms one bathroom")
        assert call.stage == Stage.NEED_HOURS
        turn = call.say("hmm", "not sure", "whatever you think")
        assert "minimum of 5 hours" in turn.prompt
        call.say("yes")
        assert call.session.quote.preferred_hours == 5
        assert call.stage == Stage.NEED_EXTRAS

    def test_minimum_hours_applied_before_pricing(self, call, pricing):
        call.say("home", "disinfection", "one-off", "a flat", "N1 9GU", "yes",
                 "two bedrooms one bathroom", "two hours", "no")
        assert call.stage == Stage.CONFIRM_QUOTE
        call.say("yes")
        snapshot, _ = pricing.calls[0]
        assert snapshot.preferred_hours == 5


class TestCommercialFlow:
    def test_office_walkthrough(self, call):
        call.say("it's for our office")
        assert call.session.quote.service_category == "commercial"
        call.say("regular office cleaning", "twice a week")
        quote = call.session.quote
        assert quote.job_type == "regular"
        assert quote.visit_frequency_per_week == 2
        assert call.stage == Stage.NEED_PROPERTY_TYPE
        call.say("an office", "EC1A 1BB", "yes")
        assert call.stage == Stage.NEED_ROOMS
        call.say("about two thousand square feet")
        assert "Premises size: about two thousand square feet." in call.session.quote.notes
        assert call.stage == Stage.NEED_TOILETS
        call.say("three toilets", "one kitchen", "four hours", "no extras")
        assert call.stage == Stage.CONFIRM_QUOTE
        quote = call.session.quote
        assert (quote.toilets, quote.kitchens, quote.preferred_hours) == (3, 1, 4)

    def test_kitchen_yes_without_number_counts_one(self, call):
        call.say("office", "regular office cleaning", "weekly", "an office", "EC1A 1BB", "yes",
                 "two floors", "two toilets")
        assert call.stage == Stage.NEED_KITCHENS
        call.say("yes there's a kitchen")
        assert call.session.quote.kitchens == 1


class TestPostcodeFallback:
    def test_two_failures_switch_to_fallback(self, call):
        call.say("home", "deep clean", "flat")
        assert call.stage == Stage.NEED_POSTCODE
        turn = call.say("erm it's near the station")
        assert call.stage == Stage.NEED_POSTCODE
        assert "letter by letter" in turn.prompt
        call.say("I'm not sure sorry")
        assert call.stage == Stage.POSTCODE_FALLBACK
        assert "Postcode capture failed." in call.session.quote.notes

        turn = call.say("Croydon, near East Croydon station")
        quote = call.session.quote
        assert "Fallback location: Croydon, near East Croydon station." in quote.notes
        assert quote.postcode == ""
        assert call.stage == Stage.NEED_ROOMS
        assert prompts.FALLBACK_ACK in turn.prompt

    def test_rejected_readback_asks_again(self, call):
        call.say("home", "deep clean", "flat", "SW1A 1AA")
        assert call.stage == Stage.CONFIRM_POSTCODE
        call.say("no that's wrong")
        assert call.stage == Stage.NEED_POSTCODE
        assert call.session.quote.postcode == ""

    def test_restated_postcode_replaces_readback(self, call):
        call.say("home", "deep clean", "flat", "SW1A 1AA")
        call.say("no, it's N1 9GU")
        assert call.session.quote.postcode == "N1 9GU"
        assert call.stage == Stage.CONFIRM_POSTCODE

    def test_corrected_postcode_is_read_back(self, call):
        _to_confirm_quote(call)
        turn = call.say("actually the postcode is N1 9GU")
        assert call.session.quote.postcode == "N1 9GU"
        assert call.session.postcode_confirmed is False
        assert call.stage == Stage.CONFIRM_POSTCODE
        assert "N1 9GU" in turn.prompt
        call.say("yes")
        assert call.stage == Stage.CONFIRM_QUOTE

    def test_address_words_are_not_read_as_a_postcode(self, call):
        _to_confirm_quote(call)
        call.say("actually it's flat 4 b 2 oh 1 ab")
        assert call.session.quote.postcode == "SW1A 1AA"
        assert call.session.postcode_confirmed is True
        assert call.stage == Stage.CONFIRM_QUOTE


class TestExtras:
    def test_extras_disclosed_once_and_quantities_collected(self, call):
        call.say("it's a house", "deep clean", "detached", "SW1A 1AA", "yes",
                 "four bedrooms two bathrooms", "no toilets")
        assert call.stage == Stage.NEED_EXTRAS
        turn = call.say("oven and windows please")
        assert prompts.EXTRAS_IMPACT in turn.prompt
        assert call.stage == Stage.NEED_EXTRA_QUANTITY
        assert "ovens" in turn.prompt
        turn = call.say("just one")
        assert prompts.EXTRAS_IMPACT not in turn.prompt
        assert "windows" in turn.prompt
        call.say("eight")
        quote = call.session.quote
        assert [(e.name, e.quantity) for e in quote.extras] == [
            ("Oven cleaning", 1), ("Inside windows", 8),
        ]
        assert call.stage == Stage.CONFIRM_QUOTE

    def test_inline_quantity_needs_no_follow_up(self, call):
        call.say("it's a house", "deep clean", "detached", "SW1A 1AA", "yes",
                 "four bedrooms two bathrooms", "no toilets", "two ovens")
        assert call.session.quote.get_extra("Oven cleaning").quantity == 2
        assert call.stage == Stage.CONFIRM_QUOTE

    def test_unanswered_quantity_drops_extra_with_note(self, call):
        call.say("it's a house", "deep clean", "detached", "SW1A 1AA", "yes",
                 "four bedrooms two bathrooms", "no toilets", "the fridge")
        call.say("hmm", "pardon", "what")
        quote = call.session.quote
        assert quote.get_extra("Fridge cleaning") is None
        assert "Fridge cleaning mentioned but quantity not confirmed." in quote.notes
        assert call.stage == Stage.CONFIRM_QUOTE

    def test_restated_extra_keeps_one_entry_with_latest_quantity(self, call):
        call.say("it's a house", "deep clean", "detached", "SW1A 1AA", "yes",
                 "four bedrooms two bathrooms", "no toilets", "two ovens")
        call.say("actually make that three ovens", "and the oven cleaning")
        quote = call.session.quote
        assert [(e.name, e.quantity) for e in quote.extras] == [("Oven cleaning", 3)]
        assert call.stage == Stage.CONFIRM_QUOTE


class TestCorrections:
    def test_direct_correction_at_readback(self, call):
        _to_confirm_quote(call)
        turn = call.say("actually it's four bedrooms")
        assert call.session.quote.bedrooms == 4
        assert call.stage == Stage.CONFIRM_QUOTE
        assert "4 bedrooms" in turn.prompt

    def test_no_then_correction(self, call):
        _to_confirm_quote(call)
        call.say("no")
        assert call.stage == Stage.CORRECTING
        call.say("it's a detached house")
        assert call.session.quote.domestic_property_type == "Detached house"
        assert call.stage == Stage.CONFIRM_QUOTE

    def test_correction_after_price_invalidates_and_reprices(self, call, pricing):
        _to_confirm_quote(call)
        call.say("yes")
        assert call.session.last_pricing is not None
        turn = call.say("actually change it to three bathrooms")
        assert prompts.QUOTE_INVALIDATED in turn.prompt
        assert call.session.last_pricing is None
        assert call.session.submitted_quote is None
        assert call.stage == Stage.CONFIRM_QUOTE
        call.say("yes")
        assert len(pricing.calls) == 2
        assert pricing.calls[1][0].bathrooms == 3
        assert pricing.calls[1][1] == "CA-TEST-001-quote-2"


class TestPricingFailures:
    def test_currency_violation_goes_to_callback(self):
        body = '{"amount": 45, "currency": "GBP", "message": "That will be $45"}'
        pricing = FakePricing([PricingResponse(
            PricingStatus.OK, result=QuoteResult(amount=45.0, currency="GBP"), raw_body=body,
        )])
        call = CallDriver(build_orchestrator(pricing))
        _to_confirm_quote(call)
        turn = call.say("yes")
        assert call.stage == Stage.CALLBACK_NAME
        assert "$" not in turn.prompt
        assert "45" not in turn.prompt
        assert call.session.last_pricing is None

    def test_failure_retries_from_postcode(self):
        pricing = FakePricing([failed_pricing(), ok_pricing(95)])
        call = CallDriver(build_orchestrator(pricing))
        _to_confirm_quote(call)
        turn = call.say("yes")
        assert prompts.PRICING_APOLOGY in turn.prompt
        assert call.stage == Stage.NEED_POSTCODE
        call.say("SW1A 1AA", "yes")
        assert call.stage == Stage.CONFIRM_QUOTE
        turn = call.say("yes")
        assert "£95" in turn.prompt
        assert call.stage == Stage.OFFER_BOOKING

    def test_failure_after_location_fallback_rechecks_details(self):
        pricing = FakePricing([failed_pricing(), ok_pricing(95)])
        call = CallDriver(build_orchestrator(pricing))
        call.say("home", "deep clean", "flat", "erm it's near the station", "I'm not sure sorry",
                 "Croydon, near East Croydon station", "two bedrooms and one bathroom",
                 "no toilets", "no thanks")
        assert call.stage == Stage.CONFIRM_QUOTE
        turn = call.say("yes")
        assert prompts.PRICING_APOLOGY_RECHECK in turn.prompt
        assert prompts.PRICING_APOLOGY not in turn.prompt
        assert call.stage == Stage.CONFIRM_QUOTE
        turn = call.say("yes")
        assert "£95" in turn.prompt

    def test_repeated_failure_goes_to_callback(self):
        pricing = FakePricing([failed_pricing(), failed_pricing()])
        call = CallDriver(build_orchestrator(pricing))
        _to_confirm_quote(call)
        call.say("yes", "SW1A 1AA", "yes", "yes")
        assert call.stage == Stage.CALLBACK_NAME
        turn = call.say("my name is Sam Patel", "07700 900123")
        assert turn.expect_reply is False
        session = call.orchestrator.store.get(call.call_id)
        assert session.callback == {"name": "Sam Patel", "phone": "07700900123"}
        assert session.outcome == CallOutcome.CALLBACK_REQUESTED


class TestBooking:
    def _priced(self, call: CallDriver) -> None:
        _to_confirm_quote(call)
        call.say("yes")
        assert call.stage == Stage.OFFER_BOOKING

    def test_full_booking(self, call, booking):
        self._priced(call)
        call.say("yes please")
        assert call.stage == Stage.NEED_FULL_NAME
        call.say("Jane Smith", "07700 900123", "jane at example dot com", "12 Acacia Avenue")
        # Postcode was carried over from the quote.
        assert call.stage == Stage.NEED_DATE
        call.say("next Tuesday")
        turn = call.say("in the morning")
        assert turn.expect_reply is False
        assert "TS-1001" in turn.prompt
        sent, key = booking.calls[0]
        assert sent.full_name == "Jane Smith"
        assert sent.email == "jane@example.com"
        assert sent.postcode == "SW1A 1AA"
        assert key == "CA-TEST-001-booking-1"

    def test_failed_booking_asks_for_new_date(self):
        booking = FakeBooking([failed_booking()])
        call = CallDriver(build_orchestrator(booking=booking))
        self._priced(call)
        call.say("yes", "Jane Smith", "07700 900123", "jane@example.com", "12 Acacia Avenue",
                 "Tuesday")
        turn = call.say("morning")
        assert prompts.BOOKING_RETRY in turn.prompt
        assert call.stage == Stage.NEED_DATE
        assert call.session.booking.preferred_date == ""
        assert call.session.booking.full_name == "Jane Smith"
        turn = call.say("Wednesday", "afternoon")
        assert turn.expect_reply is False
        assert len(booking.calls) == 2

    def test_booking_exhausted_promises_callback(self):
        booking = FakeBooking([failed_booking(), failed_booking()])
        call = CallDriver(build_orchestrator(booking=booking))
        self._priced(call)
        call.say("yes", "Jane Smith", "07700 900123", "jane@example.com", "12 Acacia Avenue",
                 "Tuesday", "morning", "Wednesday")
        turn = call.say("afternoon")
        assert turn.expect_reply is False
        assert "call you" in turn.prompt

    def test_decline_ends_call(self, call):
        self._priced(call)
        turn = call.say("no thanks")
        assert turn.expect_reply is False
        assert call.session.outcome == CallOutcome.DECLINED
        again = call.say("hello?")
        assert again.expect_reply is False


class TestSilence:
    def test_silence_reasks_then_reopens(self, call):
        turn = call.say("")
        assert prompts.NO_INPUT in turn.prompt
        call.say("")
        turn = call.say("")
        assert turn.prompt.startswith(prompts.OPENING_LINE)
        assert call.stage == Stage.NEED_CATEGORY

    def test_speech_resets_silence_counter(self, call):
        call.say("", "", "home")
        assert call.session.silence_turns == 0


class TestAiBackfill:
    def test_ai_fills_empty_fields_only(self):
        proposal = QuoteDraft(
            service_category="commercial",
            domestic_service_type="End of Tenancy Clean",
            bedrooms=2,
            notes="Premises size: huge",
        )
        extractor = FakeExtractor(proposal)
        call = CallDriver(build_orchestrator(extractor=extractor))
        call.say("it's my flat, a deep clean")
        quote = call.session.quote
        assert quote.service_category == "domestic"
        assert quote.domestic_service_type == "Deep Clean"
        assert quote.bedrooms == 2
        assert quote.notes == ""
        assert extractor.calls == ["it's my flat, a deep clean"]

    def test_ai_property_type_held_for_high_risk_phrase(self):
        proposal = QuoteDraft(service_category="domestic",
                              domestic_property_type="Semi-detached house")
        extractor = FakeExtractor()
        call = CallDriver(build_orchestrator(extractor=extractor))
        call.say("home", "deep clean")
        extractor.proposal = proposal
        call.say("semi")
        assert call.stage == Stage.CONFIRM_PROPERTY_TYPE
        assert call.session.quote.domestic_property_type == ""

    def test_ai_property_type_held_after_bare_house(self):
        extractor = FakeExtractor(QuoteDraft(service_category="domestic",
                                             domestic_property_type="Detached house"))
        call = CallDriver(build_orchestrator(extractor=extractor))
        turn = call.say("it's a house", "deep clean")
        assert call.session.quote.domestic_property_type == ""
        assert call.stage == Stage.NEED_PROPERTY_TYPE
        assert "what kind of house" in turn.prompt


class TestEndCall:
    def test_end_call_removes_session(self, call):
        session = call.orchestrator.end_call(call.call_id)
        assert session is not None
        assert call.orchestrator.store.get(call.call_id) is None
        assert call.orchestrator.end_call(call.call_id) is None

    def test_hangup_while_pricing_discards_the_session(self):
        pricing = DisconnectingPricing()
        orchestrator = build_orchestrator(pricing)
        call = CallDriver(orchestrator)
        pricing.orchestrator = orchestrator
        pricing.call_id = call.call_id
        _to_confirm_quote(call)
        call.say("yes")
        assert len(pricing.calls) == 1
        assert call.call_id not in orchestrator.store
        assert len(orchestrator.store) == 0

    def test_reply_after_call_ended_is_currency_locked(self, call, monkeypatch):
        monkeypatch.setattr(prompts, "build_decline_closing", lambda: "Bye, that was $5 well spent.")
        call.session.machine = ConversationStateMachine(Stage.ENDED)
        turn = call.say("hello?")
        assert turn.expect_reply is False
        assert turn.prompt == POUNDS_ONLY_SENTENCE
