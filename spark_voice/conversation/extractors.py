"""
Deterministic slot extractors for caller utterances.

Every function here is pure: ``utterance -> value | None``. They never
touch call state; the orchestrator decides what to do with the result.
Matching is case-insensitive and on word boundaries so "site" does not
fire inside "website".
"""

import re
from typing import Optional

from spark_voice.tools.services import (
    COMMERCIAL,
    DOMESTIC,
    EXTRA_ALIASES,
    ONE_TIME,
    REGULAR,
)


def _compile_patterns(phrases: list[str]) -> re.Pattern[str]:
    """Compile a list of phrases into a single word-boundary regex."""
    escaped = [re.escape(p) for p in phrases]
    return re.compile(r"\b(?:" + "|".join(escaped) + r")\b", re.IGNORECASE)


NUMBER_WORDS: dict[str, int] = {
    "zero": 0, "none": 0, "no": 0,
    "a": 1, "an": 1, "one": 1, "single": 1, "just one": 1,
    "two": 2, "a couple of": 2, "a couple": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14,
    "fifteen": 15, "sixteen": 16, "seventeen": 17, "eighteen": 18,
    "nineteen": 19, "twenty": 20,
}

# Words that are too weak to count as a spoken quantity on their own.
_WEAK_NUMBER_WORDS = {"a", "an", "no"}

_NUMBER = r"(\d+(?:\.\d+)?|" + "|".join(
    re.escape(w) for w in sorted(NUMBER_WORDS, key=len, reverse=True)
) + r")"


def _to_number(token: str) -> Optional[float]:
    token = token.lower().strip()
    if token in NUMBER_WORDS:
        return float(NUMBER_WORDS[token])
    try:
        return float(token)
    except ValueError:
        return None


# ------------------------------------------------------------------ #
# Category
# ------------------------------------------------------------------ #

DOMESTIC_SIGNALS = _compile_patterns([
    "home", "house", "flat", "apartment", "studio", "tenancy", "landlord",
    "move out", "move-out", "moving out", "domestic", "residential",
    "maisonette", "bungalow", "semi", "terraced", "detached",
])

COMMERCIAL_SIGNALS = _compile_patterns([
    "office", "offices", "shop", "warehouse", "school", "clinic", "gym",
    "venue", "site", "business", "restaurant", "workplace", "commercial",
    "premises", "store", "surgery", "nursery", "factory", "workshop",
])


def extract_category(text: str) -> Optional[str]:
    """Return "domestic" or "commercial" only when exactly one side matched."""
    domestic = bool(DOMESTIC_SIGNALS.search(text or ""))
    commercial = bool(COMMERCIAL_SIGNALS.search(text or ""))
    if domestic and not commercial:
        return DOMESTIC
    if commercial and not domestic:
        return COMMERCIAL
    return None


# ------------------------------------------------------------------ #
# Service type
# ------------------------------------------------------------------ #

_TENANCY = re.compile(
    r"\b(?:tenancy|move[\s-]?out|moving out|end of lease|check[\s-]?out clean)\b", re.IGNORECASE
)
_POST_CONSTRUCTION = re.compile(
    r"\b(?:post|after)[\s-]*(?:the\s+)?(?:construction|builders?|building work|renovations?)\b",
    re.IGNORECASE,
)
_DISINFECTION = re.compile(r"\b(?:disinfect\w*|saniti[sz]\w*)\b", re.IGNORECASE)
_DEEP = re.compile(r"\bdeep\b", re.IGNORECASE)
_RECURRENCE = _compile_patterns([
    "regular", "regularly", "recurring", "ongoing", "weekly", "fortnightly",
    "monthly", "every week", "routine", "contract", "maintenance clean",
    "general clean", "standard clean", "housekeeping",
])

SERVICE_TYPE_RULES: dict[str, list[tuple[re.Pattern[str], str]]] = {
    DOMESTIC: [
        (_TENANCY, "End of Tenancy Clean"),
        (_POST_CONSTRUCTION, "Post-construction Clean"),
        (_DISINFECTION, "Disinfection"),
        (_DEEP, "Deep Clean"),
        (_RECURRENCE, "Regular Cleaning"),
    ],
    COMMERCIAL: [
        (_POST_CONSTRUCTION, "Post-construction Clean"),
        (_DISINFECTION, "Disinfection"),
        (_DEEP, "Deep Clean"),
        (_RECURRENCE, "Regular Commercial Cleaning"),
        (_compile_patterns(["office cleaning", "commercial cleaning", "cleaner"]),
         "Regular Commercial Cleaning"),
    ],
}


def extract_service_type(text: str, category: str) -> Optional[str]:
    """First matching rule for the category wins."""
    for pattern, service_type in SERVICE_TYPE_RULES.get(category, []):
        if pattern.search(text or ""):
            return service_type
    return None


# ------------------------------------------------------------------ #
# Property type
# ------------------------------------------------------------------ #

PROPERTY_TYPE_RULES: dict[str, list[tuple[re.Pattern[str], str]]] = {
    DOMESTIC: [
        (_compile_patterns(["studio"]), "Studio flat"),
        (_compile_patterns(["semi", "semmy", "semi-d", "semi detached", "semi-detached"]),
         "Semi-detached house"),
        (_compile_patterns(["terrace", "terraced", "mid-terrace", "end terrace",
                            "end-of-terrace", "townhouse", "town house"]),
         "Terraced house"),
        (_compile_patterns(["detached"]), "Detached house"),
        (_compile_patterns(["flat", "apartment", "maisonette", "penthouse"]), "Flat"),
    ],
    COMMERCIAL: [
        (_compile_patterns(["commercial kitchen", "restaurant", "cafe", "café", "takeaway"]),
         "Commercial kitchen"),
        (_compile_patterns(["nursery", "daycare", "day care", "creche", "crèche"]),
         "Nursery (daycare)"),
        (_compile_patterns(["office", "offices", "coworking", "co-working"]), "Office"),
        (_compile_patterns(["school", "college", "academy", "university"]), "School"),
        (_compile_patterns(["clinic", "surgery", "dental practice", "dentist", "medical"]),
         "Medical clinic"),
        (_compile_patterns(["warehouse", "storage unit", "distribution centre"]), "Warehouse"),
        (_compile_patterns(["shop", "store", "retail", "boutique", "showroom"]), "Retail shop"),
        (_compile_patterns(["gym", "fitness", "leisure centre", "studio gym"]), "Gym"),
        (_compile_patterns(["workshop", "factory", "industrial", "garage"]),
         "Industrial workshop"),
        (_compile_patterns(["venue", "event", "events", "hall", "function room"]), "Event venue"),
    ],
}

HIGH_RISK_PROPERTY_PHRASES = _compile_patterns([
    "semi", "semmy", "semi-d", "terrace", "terraced", "mid-terrace",
    "end terrace", "detached-ish", "flat-ish", "apartment sort",
    "studio-type", "maisonette", "upstairs flat", "ground floor flat",
])

_BARE_HOUSE = _compile_patterns(["house", "home", "cottage", "bungalow"])


def extract_property_type(text: str, category: str) -> Optional[str]:
    """Normalize a property description; bare "house" never resolves."""
    for pattern, property_type in PROPERTY_TYPE_RULES.get(category, []):
        if pattern.search(text or ""):
            return property_type
    return None


def is_high_risk_property_phrase(text: str) -> bool:
    """Phrases speech recognition commonly mishears and that need a read-back."""
    return bool(HIGH_RISK_PROPERTY_PHRASES.search(text or ""))


def mentions_unspecified_house(text: str) -> bool:
    """True when the caller said "house" without saying which kind."""
    return bool(_BARE_HOUSE.search(text or "")) and extract_property_type(text, DOMESTIC) is None


# ------------------------------------------------------------------ #
# Job type and visit frequency
# ------------------------------------------------------------------ #

_ONE_TIME = re.compile(
    r"\b(?:one[\s-]?off|one[\s-]?time|just the once|single visit|"
    r"once(?!\s+(?:a|an|every|per|each)\b))\b",
    re.IGNORECASE,
)
_REGULAR = _compile_patterns([
    "ongoing", "regular", "recurring", "weekly", "monthly", "fortnightly",
    "every week", "every month", "contract", "repeat", "twice a week",
])

# Ordered: more specific phrases before the ones they contain.
FREQUENCY_TABLE: list[tuple[re.Pattern[str], float]] = [
    (_compile_patterns(["daily including weekends", "every day", "seven days a week",
                        "7 days a week", "every single day", "including weekends"]), 7.0),
    (_compile_patterns(["every weekday", "weekdays", "monday to friday",
                        "five days a week", "5 days a week", "five times a week",
                        "5 times a week"]), 5.0),
    (_compile_patterns(["three times a week", "3 times a week", "three times per week",
                        "thrice weekly", "three days a week", "3 days a week"]), 3.0),
    (_compile_patterns(["twice a week", "two times a week", "2 times a week",
                        "twice weekly", "twice per week", "two days a week",
                        "2 days a week"]), 2.0),
    (_compile_patterns(["fortnightly", "bi-weekly", "biweekly", "every other week",
                        "every two weeks", "every 2 weeks", "once a fortnight",
                        "every fortnight", "alternate weeks"]), 0.5),
    (_compile_patterns(["monthly", "once a month", "every month", "once every month",
                        "every four weeks", "every 4 weeks"]), 0.25),
    (_compile_patterns(["weekly", "once a week", "every week", "once per week",
                        "one day a week"]), 1.0),
]

_TIMES_PER_WEEK = re.compile(
    r"\b" + _NUMBER + r"\s+(?:times|days|visits)\s+(?:a|per|each)\s+week\b", re.IGNORECASE
)

AMBIGUOUS_FREQUENCY = _compile_patterns([
    "regularly", "occasionally", "as needed", "when needed", "as and when",
    "now and then", "from time to time", "sometimes", "every so often",
    "often", "daily", "ad hoc", "whenever",
])


def extract_job_type(text: str) -> Optional[str]:
    """Return "one_time" or "regular"; a concrete frequency implies regular."""
    if extract_visit_frequency(text) is not None:
        return REGULAR
    one_time = bool(_ONE_TIME.search(text or ""))
    regular = bool(_REGULAR.search(text or ""))
    if one_time and not regular:
        return ONE_TIME
    if regular and not one_time:
        return REGULAR
    return None


def extract_visit_frequency(text: str) -> Optional[float]:
    """Visits per week from the fixed phrase table, or "N times a week"."""
    for pattern, per_week in FREQUENCY_TABLE:
        if pattern.search(text or ""):
            return per_week
    match = _TIMES_PER_WEEK.search(text or "")
    if match:
        value = _to_number(match.group(1))
        if value is not None and 0 < value <= 7:
            return value
    return None


def is_ambiguous_frequency(text: str) -> bool:
    """Temporal words that must trigger a clarifying question, never a number."""
    return extract_visit_frequency(text) is None and bool(AMBIGUOUS_FREQUENCY.search(text or ""))


# ------------------------------------------------------------------ #
# Extras
# ------------------------------------------------------------------ #

_EXTRA_PATTERN = _compile_patterns(sorted(EXTRA_ALIASES, key=len, reverse=True))
_INLINE_QUANTITY = re.compile(
    r"\b" + _NUMBER + r"\s+(?:\w+\s+)?(" + "|".join(
        re.escape(a) for a in sorted(EXTRA_ALIASES, key=len, reverse=True)
    ) + r")\b",
    re.IGNORECASE,
)


def extract_extras(text: str) -> list[str]:
    """Canonical extra names mentioned, deduplicated, in order of mention."""
    found: list[str] = []
    for match in _EXTRA_PATTERN.finditer(text or ""):
        name = EXTRA_ALIASES[match.group(0).lower()]
        if name not in found:
            found.append(name)
    return found


def extract_extra_quantities(text: str) -> dict[str, int]:
    """Quantities stated inline, e.g. "two ovens and 6 windows"."""
    quantities: dict[str, int] = {}
    for match in _INLINE_QUANTITY.finditer(text or ""):
        if match.group(1).lower() in _WEAK_NUMBER_WORDS:
            continue
        value = _to_number(match.group(1))
        if value is None:
            continue
        quantities[EXTRA_ALIASES[match.group(2).lower()]] = int(value)
    return quantities


_NO_EXTRAS = _compile_patterns([
    "no extras", "nothing else", "no thanks", "no thank you", "none", "that's all",
    "thats all", "that's it", "thats it", "just that", "nope", "no",
])


def declines_extras(text: str) -> bool:
    return not extract_extras(text) and bool(_NO_EXTRAS.search(text or ""))


# ------------------------------------------------------------------ #
# Counts, hours, answers
# ------------------------------------------------------------------ #

_COUNT = re.compile(r"\b" + _NUMBER + r"\b", re.IGNORECASE)
_NONE = _compile_patterns(["none", "no", "zero", "nil", "not any", "don't have any"])


def extract_count(text: str) -> Optional[int]:
    """First whole number spoken, or 0 for "none"."""
    for match in _COUNT.finditer(text or ""):
        token = match.group(1).lower()
        if token in _WEAK_NUMBER_WORDS:
            continue
        value = _to_number(token)
        if value is not None:
            return int(value)
    if _NONE.search(text or ""):
        return 0
    return None


def _count_before(text: str, nouns: str) -> Optional[int]:
    pattern = r"\b" + _NUMBER + r"\s+(?:\w+\s+)?(?:" + nouns + r")\b"
    match = re.search(pattern, text or "", re.IGNORECASE)
    if not match:
        return None
    value = _to_number(match.group(1))
    return int(value) if value is not None else None


def extract_room_counts(text: str) -> dict[str, int]:
    """Bedrooms, bathrooms, toilets and kitchens named with a number."""
    counts: dict[str, int] = {}
    for field_name, nouns in [
        ("bedrooms", r"bed(?:room)?s?"),
        ("bathrooms", r"bath(?:room)?s?|shower\s*rooms?"),
        ("toilets", r"toilets?|loos?|wcs?|w\.c\.s?|cloakrooms?"),
        ("kitchens", r"kitchens?|kitchenettes?"),
    ]:
        value = _count_before(text, nouns)
        if value is not None:
            counts[field_name] = value
    return counts


def mentions_kitchen(text: str) -> bool:
    return bool(re.search(r"\bkitchens?\b|\bkitchenettes?\b", text or "", re.IGNORECASE))


_HALF_HOUR = re.compile(r"\bhalf an hour\b", re.IGNORECASE)
_HOURS = re.compile(r"\b" + _NUMBER + r"(?:\s+and a half)?\s*(?:hours?|hrs?|h)\b", re.IGNORECASE)


def extract_hours(text: str) -> Optional[float]:
    """Hours requested: "three hours", "2.5 hrs", "two and a half hours"."""
    if _HALF_HOUR.search(text or ""):
        return 0.5
    match = _HOURS.search(text or "")
    if not match:
        return None
    value = _to_number(match.group(1))
    if value is None:
        return None
    if "and a half" in match.group(0).lower():
        value += 0.5
    return value


_YES = re.compile(
    r"\b(?:yes|yeah|yep|yup|aye|correct|(?<!not )right|sure|absolutely|"
    r"definitely|go ahead|please do|ok|okay|that's it|spot on|perfect|lovely)\b",
    re.IGNORECASE,
)
_NO = re.compile(
    r"\b(?:no|nope|nah|not right|not correct|incorrect|wrong|isn't|that's not)\b",
    re.IGNORECASE,
)


def extract_yes_no(text: str) -> Optional[bool]:
    """True for yes, False for no, None when unclear or both."""
    yes = bool(_YES.search(text or ""))
    no = bool(_NO.search(text or ""))
    if yes and not no:
        return True
    if no and not yes:
        return False
    return None


_AREAS = _compile_patterns([
    "kitchen", "kitchens", "bathroom", "bathrooms", "bedroom", "bedrooms",
    "living room", "lounge", "hallway", "hall", "stairs", "landing",
    "dining room", "conservatory", "toilet", "toilets", "utility room",
    "downstairs", "upstairs",
])
_SCOPE = re.compile(r"\b(?:just|only)\s+(?:the\s+|do\s+the\s+)?([a-z ,']+?)(?:\s+please)?(?:[.!?]|$)",
                    re.IGNORECASE)


def extract_areas_scope(text: str) -> Optional[str]:
    """Areas the caller limits the job to ("just the kitchen and bathroom")."""
    match = _SCOPE.search(text or "")
    if not match:
        return None
    scope = match.group(1).strip(" ,")
    if not _AREAS.search(scope) or _COUNT.search(scope):
        return None
    return scope
