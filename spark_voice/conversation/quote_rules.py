"""
Quote completeness gate and minimum-hours normalization.

Both are pure functions of a QuoteDraft so they can be checked before
every pricing submission and tested without a call in progress.
"""

import logging
from typing import Optional

from spark_voice.schemas.quote_schema import (
    FALLBACK_LOCATION_NOTE,
    PREMISES_SIZE_NOTE,
    QuoteDraft,
)
from spark_voice.tools.services import ONE_TIME, REGULAR, is_hourly_service

logger = logging.getLogger(__name__)

# Gate items, in the order they are checked and re-prompted.
CATEGORY = "service_category"
SERVICE_TYPE = "service_type"
JOB_TYPE = "job_type"
PROPERTY_TYPE = "property_type"
LOCATION = "postcode"
ROOMS = "rooms"
HOURS = "preferred_hours"
FREQUENCY = "visit_frequency_per_week"
EXTRAS = "extras"

GATE_ORDER = (
    CATEGORY, SERVICE_TYPE, JOB_TYPE, PROPERTY_TYPE, LOCATION,
    ROOMS, HOURS, FREQUENCY, EXTRAS,
)

STUDIO_FLAT = "Studio flat"


def needs_job_type(quote: QuoteDraft) -> bool:
    """Commercial jobs and hourly domestic services need one-off vs regular."""
    if quote.is_commercial:
        return True
    return quote.is_domestic and is_hourly_service(quote.service_category, quote.service_type)


def needs_hours(quote: QuoteDraft) -> bool:
    return is_hourly_service(quote.service_category, quote.service_type)


def needs_frequency(quote: QuoteDraft) -> bool:
    return quote.job_type == REGULAR


def needs_toilets(quote: QuoteDraft) -> bool:
    """Toilets are counted apart from bathrooms for flat-fee domestic and commercial."""
    if quote.is_commercial:
        return True
    return quote.is_domestic and bool(quote.service_type) and not needs_hours(quote)


def needs_kitchens(quote: QuoteDraft) -> bool:
    return quote.is_commercial


def has_location(quote: QuoteDraft) -> bool:
    return bool(quote.postcode) or quote.has_note(FALLBACK_LOCATION_NOTE)


def has_room_details(quote: QuoteDraft) -> bool:
    if quote.is_commercial:
        return quote.has_note(PREMISES_SIZE_NOTE)
    if quote.bathrooms < 1:
        return False
    return quote.bedrooms >= 1 or quote.domestic_property_type == STUDIO_FLAT


def first_missing_field(quote: QuoteDraft) -> Optional[str]:
    """Return the first quote-critical item still missing, or None when priceable."""
    if not quote.service_category:
        return CATEGORY
    if not quote.service_type:
        return SERVICE_TYPE
    if needs_job_type(quote) and not quote.job_type:
        return JOB_TYPE
    if not quote.property_type:
        return PROPERTY_TYPE
    if not has_location(quote):
        return LOCATION
    if not has_room_details(quote):
        return ROOMS
    if needs_hours(quote) and quote.preferred_hours <= 0:
        return HOURS
    if needs_frequency(quote) and quote.visit_frequency_per_week <= 0:
        return FREQUENCY
    if quote.unconfirmed_extras():
        return EXTRAS
    return None


def is_quote_complete(quote: QuoteDraft) -> bool:
    return first_missing_field(quote) is None


def minimum_hours(quote: QuoteDraft) -> float:
    """Booking floor for the job, 0 when the service is not booked by the hour."""
    if not needs_hours(quote):
        return 0.0
    if quote.is_domestic:
        if quote.job_type == REGULAR:
            return 3.0
        if quote.job_type == ONE_TIME:
            return 5.0
        return 0.0
    if quote.job_type == ONE_TIME:
        return 5.0
    if quote.job_type == REGULAR:
        return 1.0 if quote.visit_frequency_per_week >= 3 else 3.0
    return 0.0


def apply_minimum_hours(quote: QuoteDraft) -> bool:
    """Raise ``preferred_hours`` to the floor. Returns True if it changed."""
    floor = minimum_hours(quote)
    if floor and quote.preferred_hours < floor:
        logger.info(
            "Raising preferred_hours from %s to minimum %s", quote.preferred_hours, floor
        )
        quote.preferred_hours = floor
        return True
    return False
