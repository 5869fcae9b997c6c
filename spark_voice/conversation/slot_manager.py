"""
Booking slot manager: Collect -> Validate, with a raw fallback.

Booking details are only collected once the caller accepts a price. Each
slot is validated on the spoken form; after the retry limit the raw words
are kept so the call always moves forward and the team can tidy up later.

Usage:
    manager = SlotManager()
    success, msg = manager.set_slot("full_name", "jane smith")
    if not success and manager.has_exceeded_retries("full_name"):
        value = manager.accept_raw("full_name")
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from spark_voice.config import settings
from spark_voice.conversation.postcode import extract_uk_postcode
from spark_voice.utils import normalize_email, normalize_phone, spoken_digits_to_text

logger = logging.getLogger(__name__)

# Validation thresholds
MIN_NAME_LENGTH = 2
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15
MIN_ADDRESS_LENGTH = 5

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[a-z]{2,}$", re.IGNORECASE)
_DATE_WORDS = re.compile(
    r"\b(?:today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday|"
    r"next week|weekend|jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|"
    r"july?|aug(?:ust)?|sep(?:tember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?|"
    r"first|second|third|\d+(?:st|nd|rd|th)?)\b",
    re.IGNORECASE,
)
_TIME_WORDS = re.compile(
    r"\d|\b(?:morning|afternoon|evening|noon|midday|lunchtime|early|late|anytime|"
    r"any time|one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve)\b",
    re.IGNORECASE,
)
_NAME_PREFIX = re.compile(r"^\s*(?:my name is|my name's|it's|it is|this is|i'm|i am)\s+", re.IGNORECASE)


class SlotStatus(str, Enum):
    """Lifecycle status of a slot value."""

    EMPTY = "empty"
    COLLECTED = "collected"
    VALIDATED = "validated"


def _validate_name(value: str) -> bool:
    return len(_NAME_PREFIX.sub("", value).strip()) >= MIN_NAME_LENGTH


def _validate_phone(value: str) -> bool:
    digits = re.sub(r"[^\d]", "", spoken_digits_to_text(value))
    return MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS


def _validate_email(value: str) -> bool:
    return bool(_EMAIL.match(normalize_email(value)))


def _validate_address(value: str) -> bool:
    return len(value.strip()) >= MIN_ADDRESS_LENGTH


def _validate_postcode(value: str) -> bool:
    return extract_uk_postcode(value) is not None


def _validate_date(value: str) -> bool:
    return bool(_DATE_WORDS.search(value))


def _validate_time(value: str) -> bool:
    return bool(_TIME_WORDS.search(value))


@dataclass(frozen=True)
class SlotDefinition:
    """Schema for a single slot to collect."""

    name: str
    display_name: str
    required: bool = True
    validator: Optional[Callable[[str], bool]] = None
    prompt_hint: str = ""
    max_retries: int = settings.guardrails.max_slot_retries


@dataclass
class SlotValue:
    """Current state and history of a collected slot."""

    raw_value: Optional[str] = None
    normalized_value: Optional[str] = None
    status: SlotStatus = SlotStatus.EMPTY
    attempts: int = 0
    correction_history: list[str] = field(default_factory=list)


class SlotManager:
    """
    Manages booking slot collection with validation and retry limits.

    Slot names match BookingDraft fields so validated values can be
    copied across with setattr.
    """

    SLOT_DEFINITIONS: list[SlotDefinition] = [
        SlotDefinition(
            name="full_name",
            display_name="name",
            prompt_hint="Ask for their full name",
            validator=_validate_name,
        ),
        SlotDefinition(
            name="phone",
            display_name="phone number",
            prompt_hint="Ask for the best contact number",
            validator=_validate_phone,
        ),
        SlotDefinition(
            name="email",
            display_name="email address",
            prompt_hint="Ask for an email address for the confirmation",
            validator=_validate_email,
        ),
        SlotDefinition(
            name="address",
            display_name="address",
            prompt_hint="Ask for the first line of the address to be cleaned",
            validator=_validate_address,
        ),
        SlotDefinition(
            name="postcode",
            display_name="postcode",
            prompt_hint="Ask for the postcode of the property",
            validator=_validate_postcode,
        ),
        SlotDefinition(
            name="preferred_date",
            display_name="preferred date",
            prompt_hint="Ask which day suits them",
            validator=_validate_date,
        ),
        SlotDefinition(
            name="preferred_time",
            display_name="preferred time",
            prompt_hint="Ask what time of day works best",
            validator=_validate_time,
        ),
    ]

    def __init__(self) -> None:
        self.slots: dict[str, SlotValue] = {
            defn.name: SlotValue() for defn in self.SLOT_DEFINITIONS
        }

    def _get_definition(self, name: str) -> SlotDefinition:
        for defn in self.SLOT_DEFINITIONS:
            if defn.name == name:
                return defn
        raise ValueError(f"Unknown slot: {name}")

    def _normalize(self, name: str, value: str) -> str:
        """Apply slot-specific normalization rules."""
        value = value.strip()
        if name == "phone":
            return normalize_phone(spoken_digits_to_text(value))
        if name == "email":
            return normalize_email(value)
        if name == "postcode":
            return extract_uk_postcode(value) or value
        if name == "full_name":
            return _NAME_PREFIX.sub("", value).strip().title()
        return value

    def set_slot(self, name: str, raw_value: str) -> tuple[bool, str]:
        """
        Set a slot value with validation.

        Returns:
            (success, message); success is True if validation passed.
        """
        defn = self._get_definition(name)
        slot = self.slots[name]
        slot.raw_value = raw_value
        slot.attempts += 1

        if defn.validator and not defn.validator(raw_value):
            slot.status = SlotStatus.COLLECTED
            logger.debug("Slot '%s' validation failed: '%s'", name, raw_value)
            return False, f"The {defn.display_name} '{raw_value}' doesn't look right."

        slot.normalized_value = self._normalize(name, raw_value)
        slot.status = SlotStatus.VALIDATED
        logger.debug("Slot '%s' set to '%s'", name, slot.normalized_value)
        return True, f"Got {defn.display_name}: {slot.normalized_value}"

    def accept_raw(self, name: str) -> Optional[str]:
        """Keep the last unvalidated answer once retries are exhausted."""
        slot = self.slots[name]
        if not slot.raw_value or not slot.raw_value.strip():
            return None
        slot.normalized_value = slot.raw_value.strip()
        slot.status = SlotStatus.COLLECTED
        logger.info("Slot '%s' accepted unvalidated after %d attempts", name, slot.attempts)
        return slot.normalized_value

    def prefill(self, name: str, value: str) -> None:
        """Seed a slot from data already known (e.g. the quote postcode)."""
        slot = self.slots[name]
        slot.raw_value = value
        slot.normalized_value = value
        slot.status = SlotStatus.VALIDATED

    def clear_slot(self, name: str) -> None:
        """Reset a slot so it is asked again, keeping its history."""
        self._get_definition(name)
        old = self.slots[name]
        history = list(old.correction_history)
        if old.raw_value is not None:
            history.append(old.raw_value)
        self.slots[name] = SlotValue(correction_history=history)

    def _is_filled(self, name: str) -> bool:
        return bool(self.slots[name].normalized_value)

    def get_missing_slots(self) -> list[SlotDefinition]:
        """Get all required slots still unfilled."""
        return [
            defn
            for defn in self.SLOT_DEFINITIONS
            if defn.required and not self._is_filled(defn.name)
        ]

    def has_exceeded_retries(self, name: str) -> bool:
        """Check if a slot has exceeded its retry limit."""
        defn = self._get_definition(name)
        return self.slots[name].attempts >= defn.max_retries

    def get_slot_value(self, name: str) -> Optional[str]:
        """Get the normalized value of a slot."""
        return self.slots[name].normalized_value

    def get_stats(self) -> dict[str, Any]:
        """Get slot collection statistics for the call log."""
        total_attempts = sum(s.attempts for s in self.slots.values())
        recollected = sum(len(s.correction_history) for s in self.slots.values())
        required = sum(1 for d in self.SLOT_DEFINITIONS if d.required)
        filled = required - len(self.get_missing_slots())
        return {
            "total_attempts": total_attempts,
            "total_recollected": recollected,
            "slots_filled": filled,
            "slots_required": required,
            "fill_rate": filled / required if required else 0,
        }
