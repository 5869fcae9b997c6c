"""Booking data models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict

BOOKING_FIELDS = (
    "full_name",
    "phone",
    "email",
    "address",
    "postcode",
    "preferred_date",
    "preferred_time",
)


class BookingDraft(BaseModel):
    """Booking details collected after the caller accepts a quote."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    full_name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    postcode: str = ""
    preferred_date: str = ""
    preferred_time: str = ""

    def missing_fields(self) -> list[str]:
        return [name for name in BOOKING_FIELDS if not getattr(self, name).strip()]

    def is_complete(self) -> bool:
        return not self.missing_fields()


class BookingResult(BaseModel):
    """Booking webhook outcome."""

    success: bool
    reference: Optional[str] = None
    message: str = ""
