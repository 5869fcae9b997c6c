"""
Deterministic guardrails between raw words and what the call accepts or says.

Three independent layers, each checking a different concern:
1. CurrencyGuardrail: pounds only, on every outward sentence and on pricing replies
2. PropertyTypeGuardrail: risky property phrases need a read-back before acceptance
3. ProposalGuardrail: sanitizes AI-proposed QuoteDrafts before they are merged

These are composed into a GuardrailPipeline used by the orchestrator and
the action coordinator.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from spark_voice.conversation.extractors import is_high_risk_property_phrase
from spark_voice.conversation.postcode import normalize_postcode
from spark_voice.schemas.quote_schema import POSTCODE_FAILED_NOTE, QuoteDraft
from spark_voice.tools.services import (
    is_allowed_extra,
    is_valid_property_type,
    is_valid_service_type,
)

logger = logging.getLogger(__name__)

POUNDS_ONLY_SENTENCE = "All our prices are quoted in pounds sterling."


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    severity: str = "warning"  # "warning" | "block" | "confirm"


class CurrencyGuardrail:
    """Keeps dollar amounts out of everything the caller hears."""

    DOLLAR_MARKERS = re.compile(r"\$|\busd\b|\bdollars?\b|\bbucks\b", re.IGNORECASE)

    def check_text(self, text: str) -> GuardrailResult:
        match = self.DOLLAR_MARKERS.search(text or "")
        if match:
            return GuardrailResult(
                passed=False,
                violation_type="currency_violation",
                message=f"Outgoing text contains '{match.group(0)}'.",
                severity="block",
            )
        return GuardrailResult(passed=True)

    def lock(self, segment: str) -> str:
        """Replace a segment that mentions dollars with the pounds-only sentence."""
        if self.check_text(segment).passed:
            return segment
        logger.warning("Currency lock replaced an outgoing segment")
        return POUNDS_ONLY_SENTENCE

    def check_pricing_response(self, raw_body: str, currency: Optional[str]) -> GuardrailResult:
        """A pricing reply is rejected on any dollar marker or a non-GBP currency field."""
        body_check = self.check_text(raw_body)
        if not body_check.passed:
            return body_check
        if currency and currency.strip().upper() != "GBP":
            return GuardrailResult(
                passed=False,
                violation_type="currency_violation",
                message=f"Pricing currency is {currency!r}, expected GBP.",
                severity="block",
            )
        return GuardrailResult(passed=True)


class PropertyTypeGuardrail:
    """Flags property phrases speech recognition tends to mangle."""

    def check(self, text: str, already_confirmed: bool) -> GuardrailResult:
        if already_confirmed or not is_high_risk_property_phrase(text):
            return GuardrailResult(passed=True)
        return GuardrailResult(
            passed=False,
            violation_type="high_risk_property_phrase",
            message="Property type needs an explicit yes/no read-back.",
            severity="confirm",
        )


class ProposalGuardrail:
    """Strips anything from an AI-proposed QuoteDraft the dialogue must decide itself."""

    def sanitize(
        self,
        proposal: QuoteDraft,
        current: QuoteDraft,
        hold_property_type: bool = False,
    ) -> QuoteDraft:
        """Return a cleaned copy of ``proposal``; the original is untouched."""
        clean = proposal.model_copy(deep=True)
        dropped: list[str] = []

        if current.service_category:
            clean.service_category = current.service_category
        clean.clear_opposite_branch()

        if clean.visit_frequency_per_week:
            clean.visit_frequency_per_week = 0
            dropped.append("visit_frequency_per_week")

        if clean.postcode:
            canonical = normalize_postcode(clean.postcode)
            if canonical is None or current.has_note(POSTCODE_FAILED_NOTE):
                clean.postcode = ""
                dropped.append("postcode")
            else:
                clean.postcode = canonical

        category = clean.service_category
        if clean.service_type and not is_valid_service_type(category, clean.service_type):
            clean.set_service_type("")
            dropped.append("service_type")

        if clean.property_type and (
            hold_property_type or not is_valid_property_type(category, clean.property_type)
        ):
            clean.set_property_type("")
            dropped.append("property_type")

        if not category:
            for name in (
                "domestic_service_type", "commercial_service_type",
                "domestic_property_type", "commercial_property_type",
            ):
                setattr(clean, name, "")

        clean.extras = [
            extra.model_copy(update={"quantity": 0})
            for extra in clean.extras
            if is_allowed_extra(extra.name)
        ]
        if len(clean.extras) != len(proposal.extras):
            dropped.append("extras")

        # Notes carry gate markers; only the dialogue writes them.
        clean.notes = ""

        if dropped:
            logger.debug("Proposal fields dropped by guardrails: %s", dropped)
        return clean


class GuardrailPipeline:
    """Composes the guardrails for outgoing speech and incoming proposals."""

    def __init__(self) -> None:
        self.currency = CurrencyGuardrail()
        self.property_type = PropertyTypeGuardrail()
        self.proposal = ProposalGuardrail()

    def lock_segments(self, segments: list[str]) -> str:
        """Apply the currency lock per segment and join them into one prompt."""
        return " ".join(self.currency.lock(s) for s in segments if s and s.strip())

    def check_pricing_response(self, raw_body: str, currency: Optional[str]) -> GuardrailResult:
        return self.currency.check_pricing_response(raw_body, currency)

    def needs_property_confirmation(self, text: str, already_confirmed: bool) -> bool:
        return not self.property_type.check(text, already_confirmed).passed

    def sanitize_proposal(
        self,
        proposal: QuoteDraft,
        current: QuoteDraft,
        hold_property_type: bool = False,
    ) -> QuoteDraft:
        return self.proposal.sanitize(proposal, current, hold_property_type)
