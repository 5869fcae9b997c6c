"""Service catalog: the fixed vocabularies a quote may contain.

Service types, property types and extras are normalized to the names
below before they enter a QuoteDraft. The pricing webhook keys on these
exact strings.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

DOMESTIC = "domestic"
COMMERCIAL = "commercial"
CATEGORIES = (DOMESTIC, COMMERCIAL)

ONE_TIME = "one_time"
REGULAR = "regular"
JOB_TYPES = (ONE_TIME, REGULAR)

SERVICE_CATALOG: dict[str, dict[str, dict]] = {
    DOMESTIC: {
        "End of Tenancy Clean": {
            "hourly": False,
            "description": "Full clean when moving out, priced on the size of the property.",
        },
        "Deep Clean": {
            "hourly": False,
            "description": "Top-to-bottom clean of the whole home or of selected areas.",
        },
        "Post-construction Clean": {
            "hourly": False,
            "description": "Dust and debris removal after builders or renovation.",
        },
        "Regular Cleaning": {
            "hourly": True,
            "description": "Recurring or one-off housekeeping booked by the hour.",
        },
        "Disinfection": {
            "hourly": True,
            "description": "Sanitisation of touch points and surfaces, booked by the hour.",
        },
    },
    COMMERCIAL: {
        "Regular Commercial Cleaning": {
            "hourly": True,
            "description": "Contract cleaning of business premises.",
        },
        "Deep Clean": {
            "hourly": True,
            "description": "Intensive one-off clean of business premises.",
        },
        "Post-construction Clean": {
            "hourly": True,
            "description": "Builders' clean of fitted-out premises.",
        },
        "Disinfection": {
            "hourly": True,
            "description": "Sanitisation of shared and high-touch areas.",
        },
    },
}

DOMESTIC_PROPERTY_TYPES: list[str] = [
    "Studio flat",
    "Flat",
    "Terraced house",
    "Semi-detached house",
    "Detached house",
]

COMMERCIAL_PROPERTY_TYPES: list[str] = [
    "Office",
    "School",
    "Medical clinic",
    "Warehouse",
    "Commercial kitchen",
    "Retail shop",
    "Nursery (daycare)",
    "Gym",
    "Industrial workshop",
    "Event venue",
]

PROPERTY_TYPES: dict[str, list[str]] = {
    DOMESTIC: DOMESTIC_PROPERTY_TYPES,
    COMMERCIAL: COMMERCIAL_PROPERTY_TYPES,
}

# Canonical extra name -> the unit asked about when collecting its quantity.
EXTRAS_CATALOG: dict[str, str] = {
    "Oven cleaning": "ovens",
    "Fridge cleaning": "fridges",
    "Inside windows": "windows",
    "Carpet cleaning": "carpeted rooms",
    "Upholstery cleaning": "sofas or armchairs",
    "Inside cupboards": "cupboards",
    "Balcony cleaning": "balconies",
    "Blinds cleaning": "sets of blinds",
    "Mattress cleaning": "mattresses",
}

EXTRA_ALIASES: dict[str, str] = {
    "oven": "Oven cleaning", "ovens": "Oven cleaning",
    "fridge": "Fridge cleaning", "fridges": "Fridge cleaning",
    "refrigerator": "Fridge cleaning", "freezer": "Fridge cleaning",
    "window": "Inside windows", "windows": "Inside windows",
    "carpet": "Carpet cleaning", "carpets": "Carpet cleaning",
    "rug": "Carpet cleaning", "rugs": "Carpet cleaning",
    "upholstery": "Upholstery cleaning", "sofa": "Upholstery cleaning",
    "sofas": "Upholstery cleaning", "couch": "Upholstery cleaning",
    "armchair": "Upholstery cleaning", "armchairs": "Upholstery cleaning",
    "cupboard": "Inside cupboards", "cupboards": "Inside cupboards",
    "cabinet": "Inside cupboards", "cabinets": "Inside cupboards",
    "balcony": "Balcony cleaning", "balconies": "Balcony cleaning",
    "blinds": "Blinds cleaning",
    "mattress": "Mattress cleaning", "mattresses": "Mattress cleaning",
}


def get_service_types(category: str) -> list[str]:
    """Return the service type vocabulary for a category (empty if unknown)."""
    return list(SERVICE_CATALOG.get(category, {}))


def is_valid_service_type(category: str, service_type: str) -> bool:
    return service_type in SERVICE_CATALOG.get(category, {})


def is_hourly_service(category: str, service_type: str) -> bool:
    """Whether a service is priced by the hour and therefore needs hours."""
    details = SERVICE_CATALOG.get(category, {}).get(service_type)
    return bool(details and details["hourly"])


def is_valid_property_type(category: str, property_type: str) -> bool:
    return property_type in PROPERTY_TYPES.get(category, [])


def is_allowed_extra(name: str) -> bool:
    return name in EXTRAS_CATALOG


def get_extra_unit(name: str) -> str:
    """Return the spoken unit for an extra, e.g. "ovens"."""
    return EXTRAS_CATALOG.get(name, "items")


def match_extra(query: str) -> Optional[str]:
    """Match a single word or canonical name to an extra. Returns None if no match."""
    normalized = query.lower().strip()
    if normalized in EXTRA_ALIASES:
        return EXTRA_ALIASES[normalized]
    for name in EXTRAS_CATALOG:
        if name.lower() == normalized:
            return name
    return None


def describe_service_options(category: str) -> str:
    """Spoken list of service types, e.g. "deep clean, or disinfection"."""
    names = [name.lower() for name in get_service_types(category)]
    if len(names) < 2:
        return "".join(names)
    return ", ".join(names[:-1]) + ", or " + names[-1]
