"""Tests for the booking slot manager."""

import pytest

from spark_voice.conversation.slot_manager import SlotManager, SlotStatus


class TestSlotValidation:
    def test_valid_name(self, slot_manager):
        ok, _ = slot_manager.set_slot("full_name", "jane smith")
        assert ok is True
        assert slot_manager.get_slot_value("full_name") == "Jane Smith"

    def test_name_prefix_is_stripped(self, slot_manager):
        slot_manager.set_slot("full_name", "my name is sam patel")
        assert slot_manager.get_slot_value("full_name") == "Sam Patel"

    def test_name_too_short(self, slot_manager):
        ok, msg = slot_manager.set_slot("full_name", "J")
        assert ok is False
        assert "name" in msg

    def test_valid_phone(self, slot_manager):
        ok, _ = slot_manager.set_slot("phone", "07700 900 123")
        assert ok is True
        assert slot_manager.get_slot_value("phone") == "07700900123"

    def test_spoken_phone(self, slot_manager):
        ok, _ = slot_manager.set_slot("phone", "oh seven seven double oh nine double oh one two three")
        assert ok is True
        assert slot_manager.get_slot_value("phone") == "07700900123"

    def test_phone_too_short(self, slot_manager):
        ok, msg = slot_manager.set_slot("phone", "123")
        assert ok is False
        assert "phone number" in msg

    def test_spoken_email(self, slot_manager):
        ok, _ = slot_manager.set_slot("email", "jane at example dot com")
        assert ok is True
        assert slot_manager.get_slot_value("email") == "jane@example.com"

    def test_invalid_email(self, slot_manager):
        ok, _ = slot_manager.set_slot("email", "no idea")
        assert ok is False

    def test_spoken_postcode(self, slot_manager):
        ok, _ = slot_manager.set_slot("postcode", "sierra whiskey one alpha one alpha alpha")
        assert ok is True
        assert slot_manager.get_slot_value("postcode") == "SW1A 1AA"

    def test_invalid_postcode(self, slot_manager):
        ok, _ = slot_manager.set_slot("postcode", "somewhere in town")
        assert ok is False

    def test_address_too_short(self, slot_manager):
        ok, _ = slot_manager.set_slot("address", "12")
        assert ok is False

    def test_date_words(self, slot_manager):
        ok, _ = slot_manager.set_slot("preferred_date", "next Tuesday")
        assert ok is True

    def test_date_rejects_noise(self, slot_manager):
        ok, _ = slot_manager.set_slot("preferred_date", "whenever really")
        assert ok is False

    def test_time_words(self, slot_manager):
        ok, _ = slot_manager.set_slot("preferred_time", "in the morning")
        assert ok is True

    def test_failure_message_quotes_raw_value(self, slot_manager):
        _, msg = slot_manager.set_slot("phone", "abc")
        assert msg == "The phone number 'abc' doesn't look right."


class TestSlotLifecycle:
    def test_initial_status_is_empty(self, slot_manager):
        assert slot_manager.slots["full_name"].status == SlotStatus.EMPTY

    def test_valid_value_is_validated(self, slot_manager):
        slot_manager.set_slot("full_name", "Jane Smith")
        assert slot_manager.slots["full_name"].status == SlotStatus.VALIDATED

    def test_invalid_value_is_only_collected(self, slot_manager):
        slot_manager.set_slot("phone", "12")
        assert slot_manager.slots["phone"].status == SlotStatus.COLLECTED
        assert slot_manager.get_slot_value("phone") is None

    def test_accept_raw_keeps_unvalidated_answer(self, slot_manager):
        slot_manager.set_slot("preferred_date", "whenever suits")
        assert slot_manager.accept_raw("preferred_date") == "whenever suits"
        assert slot_manager.slots["preferred_date"].status == SlotStatus.COLLECTED

    def test_accept_raw_without_answer(self, slot_manager):
        assert slot_manager.accept_raw("address") is None

    def test_prefill(self, slot_manager):
        slot_manager.prefill("postcode", "SW1A 1AA")
        assert slot_manager.get_slot_value("postcode") == "SW1A 1AA"
        assert slot_manager.slots["postcode"].attempts == 0

    def test_clear_slot_keeps_history(self, slot_manager):
        slot_manager.set_slot("address", "12 Acacia Avenue")
        slot_manager.clear_slot("address")
        slot = slot_manager.slots["address"]
        assert slot.status == SlotStatus.EMPTY
        assert slot.correction_history == ["12 Acacia Avenue"]


class TestRetryTracking:
    def test_retry_count_increments(self, slot_manager):
        slot_manager.set_slot("phone", "123")
        slot_manager.set_slot("phone", "456")
        assert slot_manager.slots["phone"].attempts == 2

    def test_not_exceeded_retries_initially(self, slot_manager):
        slot_manager.set_slot("phone", "123")
        assert slot_manager.has_exceeded_retries("phone") is False

    def test_exceeded_retries_at_limit(self, slot_manager):
        limit = slot_manager._get_definition("phone").max_retries
        for _ in range(limit):
            slot_manager.set_slot("phone", "123")
        assert slot_manager.has_exceeded_retries("phone") is True


class TestSlotNavigation:
    def test_get_missing_slots(self, slot_manager):
        slot_manager.set_slot("full_name", "Jane Smith")
        assert len(slot_manager.get_missing_slots()) == 6

    def test_unknown_slot_raises(self, slot_manager):
        with pytest.raises(ValueError, match="Unknown slot"):
            slot_manager.set_slot("unknown_field", "value")


class TestStats:
    def test_get_stats(self):
        manager = SlotManager()
        manager.set_slot("full_name", "Jane Smith")
        manager.set_slot("phone", "07700900123")
        stats = manager.get_stats()
        assert stats["slots_filled"] == 2
        assert stats["slots_required"] == 7
        assert stats["total_attempts"] == 2
        assert stats["fill_rate"] == pytest.approx(2 / 7)

    def test_cleared_slot_counts_as_recollected(self, slot_manager):
        slot_manager.set_slot("preferred_date", "next Tuesday")
        slot_manager.clear_slot("preferred_date")
        stats = slot_manager.get_stats()
        assert stats["total_recollected"] == 1
        assert stats["slots_filled"] == 0
