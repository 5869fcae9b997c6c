"""
Pricing webhook client.

POSTs the submitted quote as JSON and normalizes whatever comes back:
a JSON object with ``amount``/``price``/``total``, ``currency`` and
``explanation``/``message``, or plain text treated as the explanation.
Transport errors, timeouts and non-2xx replies become
``PricingStatus.FAILED``; nothing is raised to the caller.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

from spark_voice.config import settings
from spark_voice.logging_context import get_call_logger
from spark_voice.schemas.quote_schema import QuoteResult, SubmittedQuote

logger = get_call_logger(__name__)

_AMOUNT_KEYS = ("amount", "price", "total")
_EXPLANATION_KEYS = ("explanation", "message")


class PricingStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    CURRENCY_VIOLATION = "currency_violation"
    INCOMPLETE = "incomplete"


@dataclass
class PricingResponse:
    """What the webhook said, before any currency checks."""
    status: PricingStatus
    result: Optional[QuoteResult] = None
    raw_body: str = ""
    detail: str = ""


def _parse_amount(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = re.search(r"\d+(?:\.\d+)?", value.replace(",", ""))
        if match:
            return float(match.group(0))
    return None


def parse_pricing_body(body: str, content: Any = None) -> QuoteResult:
    """Build a QuoteResult from a decoded JSON object or plain text."""
    if isinstance(content, dict):
        amount = None
        for key in _AMOUNT_KEYS:
            if key in content:
                amount = _parse_amount(content[key])
                if amount is not None:
                    break
        explanation = ""
        for key in _EXPLANATION_KEYS:
            if content.get(key):
                explanation = str(content[key])
                break
        currency = str(content.get("currency") or "GBP")
        return QuoteResult(amount=amount, currency=currency, explanation=explanation)
    return QuoteResult(explanation=body.strip())


class PricingClient:
    """Blocking client for the quote webhook."""

    def __init__(
        self,
        url: str = settings.webhooks.quote_url,
        timeout: float = settings.webhooks.timeout_sec,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)

    def get_quote(self, quote: SubmittedQuote, idempotency_key: str) -> PricingResponse:
        if not self.url:
            logger.warning("GETQUOTE_WEBHOOK_URL is not configured")
            return PricingResponse(PricingStatus.FAILED, detail="pricing webhook not configured")

        try:
            response = self._client.post(
                self.url,
                json=quote.model_dump(mode="json"),
                headers={"Idempotency-Key": idempotency_key},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Pricing webhook returned %s", exc.response.status_code)
            return PricingResponse(
                PricingStatus.FAILED, detail=f"http {exc.response.status_code}"
            )
        except httpx.HTTPError as exc:
            logger.warning("Pricing webhook request failed: %s", exc)
            return PricingResponse(PricingStatus.FAILED, detail=type(exc).__name__)

        body = response.text
        try:
            content = response.json()
        except ValueError:
            content = None
        result = parse_pricing_body(body, content)
        logger.info("Pricing webhook replied: amount=%s currency=%s", result.amount, result.currency)
        return PricingResponse(PricingStatus.OK, result=result, raw_body=body)

    def close(self) -> None:
        self._client.close()
