"""
Two-source merge of AI-proposed quote fields into the live QuoteDraft.

Deterministic extraction always runs first. The AI proposal can only
backfill fields that are still empty: a populated current value is never
overwritten, and an empty proposed value never clears anything.
"""

import logging
from typing import Any, Optional

from spark_voice.conversation.guardrails import GuardrailPipeline
from spark_voice.schemas.quote_schema import QuoteDraft
from spark_voice.tools.extraction import QuoteExtractor

logger = logging.getLogger(__name__)


def is_populated(value: Any) -> bool:
    """Non-empty string, non-zero number or non-empty collection."""
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return bool(value)
    if isinstance(value, (int, float)):
        return value != 0
    return value is not None


def merge_quote(current: QuoteDraft, proposed: QuoteDraft) -> list[str]:
    """Fill empty fields of ``current`` from ``proposed``. Returns the fields changed.

    Extras merge by name: names not yet on the draft are added, existing
    entries keep their quantity.
    """
    changed: list[str] = []
    for name in QuoteDraft.model_fields:
        if name == "extras":
            continue
        if is_populated(getattr(current, name)):
            continue
        value = getattr(proposed, name)
        if is_populated(value):
            setattr(current, name, value)
            changed.append(name)

    added = False
    for extra in proposed.extras:
        if current.get_extra(extra.name) is None:
            current.upsert_extra(extra.name, extra.quantity)
            added = True
    if added:
        changed.append("extras")

    current.clear_opposite_branch()
    return changed


class DeltaMerger:
    """Asks the extractor for a proposal, sanitizes it and merges it."""

    def __init__(
        self,
        extractor: Optional[QuoteExtractor],
        guardrails: Optional[GuardrailPipeline] = None,
    ) -> None:
        self.extractor = extractor
        self.guardrails = guardrails or GuardrailPipeline()

    @property
    def enabled(self) -> bool:
        return self.extractor is not None

    def apply(self, quote: QuoteDraft, utterance: str, hold_property_type: bool = False) -> list[str]:
        """Merge whatever the extractor proposes; no change when it has nothing."""
        if self.extractor is None or not utterance.strip():
            return []
        proposal = self.extractor.propose(quote, utterance)
        if proposal is None:
            return []
        clean = self.guardrails.sanitize_proposal(proposal, quote, hold_property_type)
        changed = merge_quote(quote, clean)
        if changed:
            logger.info("AI backfilled quote fields: %s", changed)
        return changed
