"""Quote data models: the priceable record and the pricing webhook reply."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from spark_voice.tools.services import COMMERCIAL, DOMESTIC

# Markers written into ``notes`` so completeness can be judged from the draft alone.
POSTCODE_FAILED_NOTE = "Postcode capture failed."
FALLBACK_LOCATION_NOTE = "Fallback location:"
PREMISES_SIZE_NOTE = "Premises size:"


class Extra(BaseModel):
    """An add-on service. Identity is ``name``; quantity 0 means not yet confirmed."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    quantity: int = Field(default=0, ge=0)


class QuoteDraft(BaseModel):
    """The incrementally filled record submitted to the pricing webhook."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    service_category: Literal["", "domestic", "commercial"] = ""
    domestic_service_type: str = ""
    commercial_service_type: str = ""
    domestic_property_type: str = ""
    commercial_property_type: str = ""
    job_type: Literal["", "one_time", "regular"] = ""
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    toilets: int = Field(default=0, ge=0)
    kitchens: int = Field(default=0, ge=0)
    postcode: str = ""
    preferred_hours: float = Field(default=0, ge=0)
    visit_frequency_per_week: float = Field(default=0, ge=0)
    areas_scope: str = ""
    extras: list[Extra] = Field(default_factory=list)
    notes: str = ""

    @property
    def is_domestic(self) -> bool:
        return self.service_category == DOMESTIC

    @property
    def is_commercial(self) -> bool:
        return self.service_category == COMMERCIAL

    @property
    def service_type(self) -> str:
        """The category-appropriate service type, or "" while unknown."""
        if self.is_domestic:
            return self.domestic_service_type
        if self.is_commercial:
            return self.commercial_service_type
        return ""

    @property
    def property_type(self) -> str:
        if self.is_domestic:
            return self.domestic_property_type
        if self.is_commercial:
            return self.commercial_property_type
        return ""

    def set_service_type(self, value: str) -> None:
        if self.is_domestic:
            self.domestic_service_type = value
        elif self.is_commercial:
            self.commercial_service_type = value

    def set_property_type(self, value: str) -> None:
        if self.is_domestic:
            self.domestic_property_type = value
        elif self.is_commercial:
            self.commercial_property_type = value

    def clear_opposite_branch(self) -> None:
        """Empty the fields that belong to the category not chosen."""
        if self.is_domestic:
            self.commercial_service_type = ""
            self.commercial_property_type = ""
        elif self.is_commercial:
            self.domestic_service_type = ""
            self.domestic_property_type = ""

    def get_extra(self, name: str) -> Optional[Extra]:
        for extra in self.extras:
            if extra.name == name:
                return extra
        return None

    def upsert_extra(self, name: str, quantity: int = 0) -> None:
        """Insert or update an extra by name; at most one entry per name."""
        existing = self.get_extra(name)
        if existing is not None:
            existing.quantity = quantity
        else:
            self.extras = [*self.extras, Extra(name=name, quantity=quantity)]

    def remove_extra(self, name: str) -> None:
        self.extras = [e for e in self.extras if e.name != name]

    def unconfirmed_extras(self) -> list[str]:
        return [e.name for e in self.extras if e.quantity == 0]

    def add_note(self, text: str) -> None:
        text = text.strip()
        if text:
            self.notes = f"{self.notes} {text}".strip()

    def has_note(self, marker: str) -> bool:
        return marker in self.notes


class SubmittedQuote(QuoteDraft):
    """Read-only snapshot of a QuoteDraft as it was sent for pricing."""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_draft(cls, draft: QuoteDraft) -> "SubmittedQuote":
        return cls.model_validate(draft.model_dump())


class QuoteResult(BaseModel):
    """Normalized pricing webhook reply."""

    amount: Optional[float] = None
    currency: str = "GBP"
    explanation: str = ""
