"""
System prompt for the optional AI extraction service.

The model only proposes field values; it never speaks to the caller.
Vocabularies are injected from the service catalog so the prompt and
the guardrails always agree on the allowed values.
"""

from spark_voice.config import settings
from spark_voice.tools.services import (
    COMMERCIAL_PROPERTY_TYPES,
    DOMESTIC_PROPERTY_TYPES,
    EXTRAS_CATALOG,
    get_service_types,
)

_biz = settings.business


def _options(values: list[str]) -> str:
    return ", ".join(f'"{v}"' for v in values)


BUSINESS_CONTEXT = f"""
You assist the phone line of {_biz.name}, a UK cleaning company offering
domestic and commercial cleaning. All prices are in pounds sterling.
"""

FIELD_RULES = f"""
FIELD RULES:
- service_category: "domestic" or "commercial", or "" if the caller has not made it clear.
- domestic_service_type: one of {_options(get_service_types("domestic"))}, or "".
- commercial_service_type: one of {_options(get_service_types("commercial"))}, or "".
- domestic_property_type: one of {_options(DOMESTIC_PROPERTY_TYPES)}, or "".
  A plain "house" is NOT enough; leave it "" until the kind of house is known.
- commercial_property_type: one of {_options(COMMERCIAL_PROPERTY_TYPES)}, or "".
- Only fill the domestic_* or the commercial_* fields, never both.
- job_type: "one_time" or "regular", or "".
- bedrooms, bathrooms, toilets, kitchens: whole numbers the caller stated, otherwise 0.
- postcode: a full UK postcode only if the caller clearly said one, otherwise "".
- preferred_hours: hours the caller asked for, otherwise 0.
- visit_frequency_per_week: always 0.
- areas_scope: the areas the caller limited the job to, otherwise "".
- extras: items from {_options(list(EXTRAS_CATALOG))} the caller mentioned, each with quantity 0.
- notes: always "".
"""

EXTRACTION_SYSTEM_PROMPT = f"""{BUSINESS_CONTEXT}

You read one caller utterance and the quote collected so far, and return
the complete quote as JSON with any values the caller just stated filled in.

RULES:
- Copy every value from the current quote unless the caller clearly changed it.
- Never guess. If the caller did not say it, leave the field empty or 0.
- Never invent prices, and never mention any currency other than pounds.
{FIELD_RULES}"""


def build_extraction_user_message(current_quote_json: str, utterance: str) -> str:
    """User turn sent alongside the system prompt."""
    return f"Current quote:\n{current_quote_json}\n\nCaller said:\n{utterance}"
