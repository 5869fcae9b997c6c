"""
OpenAI-backed QuoteDraft extraction.

Asks the model for a complete QuoteDraft in a strict JSON schema and
validates the reply with pydantic. Timeouts, API errors, malformed JSON
and schema mismatches all return None; extraction is best-effort and
the dialogue carries on without it.
"""

from typing import Any, Optional, Protocol

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from spark_voice.config import settings
from spark_voice.logging_context import get_call_logger
from spark_voice.prompts.system_prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    build_extraction_user_message,
)
from spark_voice.schemas.quote_schema import QuoteDraft

logger = get_call_logger(__name__)

_STRING = {"type": "string"}
_NUMBER = {"type": "number"}
_INTEGER = {"type": "integer"}

QUOTE_DRAFT_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "service_category": {"type": "string", "enum": ["", "domestic", "commercial"]},
        "domestic_service_type": _STRING,
        "commercial_service_type": _STRING,
        "domestic_property_type": _STRING,
        "commercial_property_type": _STRING,
        "job_type": {"type": "string", "enum": ["", "one_time", "regular"]},
        "bedrooms": _INTEGER,
        "bathrooms": _INTEGER,
        "toilets": _INTEGER,
        "kitchens": _INTEGER,
        "postcode": _STRING,
        "preferred_hours": _NUMBER,
        "visit_frequency_per_week": _NUMBER,
        "areas_scope": _STRING,
        "extras": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {"name": _STRING, "quantity": _INTEGER},
                "required": ["name", "quantity"],
            },
        },
        "notes": _STRING,
    },
    "required": list(QuoteDraft.model_fields),
}


class QuoteExtractor(Protocol):
    def propose(self, current: QuoteDraft, utterance: str) -> Optional[QuoteDraft]: ...


class OpenAIQuoteExtractor:
    """Proposes a full QuoteDraft from the latest utterance."""

    def __init__(
        self,
        client: Optional[OpenAI] = None,
        model: str = settings.model.llm_model,
        temperature: float = settings.model.llm_temperature,
        timeout: float = settings.model.ai_timeout_sec,
    ) -> None:
        self._client = client or OpenAI(
            api_key=settings.model.openai_api_key, timeout=timeout, max_retries=0
        )
        self.model = model
        self.temperature = temperature

    def propose(self, current: QuoteDraft, utterance: str) -> Optional[QuoteDraft]:
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": build_extraction_user_message(
                            current.model_dump_json(), utterance
                        ),
                    },
                ],
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": "quote_draft",
                        "strict": True,
                        "schema": QUOTE_DRAFT_JSON_SCHEMA,
                    },
                },
            )
            content = completion.choices[0].message.content
            if not content:
                logger.warning("AI extraction returned an empty message")
                return None
            return QuoteDraft.model_validate_json(content, strict=True)
        except OpenAIError as exc:
            logger.warning("AI extraction failed: %s", exc)
        except ValidationError as exc:
            logger.warning("AI extraction returned an invalid QuoteDraft: %s", exc.error_count())
        except (IndexError, ValueError) as exc:
            logger.warning("AI extraction reply could not be read: %s", exc)
        return None


def build_default_extractor() -> Optional[QuoteExtractor]:
    """OpenAI extractor when an API key is configured, otherwise None."""
    if not settings.model.ai_enabled:
        return None
    return OpenAIQuoteExtractor()
