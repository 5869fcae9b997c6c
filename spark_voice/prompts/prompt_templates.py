"""Spoken prompt construction for each stage of the call."""

from typing import Optional

from spark_voice.config import settings
from spark_voice.schemas.quote_schema import FALLBACK_LOCATION_NOTE, QuoteDraft, QuoteResult
from spark_voice.tools.services import get_extra_unit

_biz = settings.business

OPENING_LINE = f"You're through to {_biz.name}."
GREETING = (
    f"Hi, you're through to {_biz.name}, this is {_biz.assistant_name}. "
    "I can get you a cleaning quote in a couple of minutes. "
)

# Question key -> wording by attempt (first ask, second ask, later asks).
QUESTIONS: dict[str, tuple[str, ...]] = {
    "need_category": (
        "Is the cleaning for your home, or for a business?",
        "Sorry, is that a home, like a house or flat, or business premises, like an office or shop?",
    ),
    "need_service_type": (
        "What kind of clean do you need? For example {service_options}.",
        "We offer {service_options}. Which one sounds right?",
    ),
    "need_job_type": (
        "Is this a one-off clean, or something regular?",
        "Would that be just the once, or on a regular basis?",
    ),
    "need_property_type": (
        "What type of property is it? For example {property_options}.",
        "Sorry, which of these is closest: {property_options}?",
    ),
    "need_property_type_house": (
        "And what kind of house is it: terraced, semi-detached or detached?",
    ),
    "confirm_property_type": (
        "Just to check, that's a {property_type}, is that right?",
        "Sorry, can you confirm it's a {property_type}? Yes or no is fine.",
    ),
    "need_postcode": (
        "What's the postcode of the property?",
        "Sorry, I didn't catch that. Could you spell the postcode letter by letter? "
        "Something like S for Sun, W as in Winter works well.",
    ),
    "confirm_postcode": (
        "I got {postcode}. Is that right?",
        "Just checking, is the postcode {postcode}?",
    ),
    "postcode_fallback": (
        "No problem, we can sort the postcode out later. "
        "Which town is it in, and is there a landmark or street nearby?",
        "Could you tell me the town and a street or landmark near the property?",
    ),
    "need_rooms_domestic": (
        "How many bedrooms and bathrooms are there?",
        "Sorry, how many bedrooms, and how many bathrooms?",
    ),
    "need_rooms_bedrooms": (
        "And how many bedrooms?",
        "Sorry, how many bedrooms is that?",
    ),
    "need_rooms_bathrooms": (
        "And how many bathrooms?",
        "Sorry, how many bathrooms are there?",
    ),
    "need_rooms_commercial": (
        "Roughly how big is the space? The number of rooms or the square footage is fine.",
        "Could you give me a rough size, for example how many rooms, or how many square feet?",
    ),
    "need_toilets": (
        "How many separate toilets are there, not counting the bathrooms?",
        "Sorry, how many toilets? If there are none, just say none.",
    ),
    "need_kitchens": (
        "Are there any kitchens or kitchenettes to clean? If so, how many?",
        "Sorry, how many kitchens are there? None is fine too.",
    ),
    "need_hours": (
        "How many hours would you like the cleaner for?",
        "Sorry, roughly how many hours should we book?",
        "How many hours would you like? For example, three hours.",
    ),
    "need_hours_minimum": (
        "Shall I put you down for our minimum of {minimum_hours} hours?",
    ),
    "need_frequency": (
        "How often would you like the clean? For example weekly, fortnightly or monthly.",
        "Would that be weekly, every other week, or monthly?",
    ),
    "need_extras": (
        "Would you like any extras, like oven cleaning, inside windows or carpets?",
        "Any extras at all, for example oven or fridge cleaning? Or just say no.",
    ),
    "need_extra_quantity": (
        "For the {extra_name}, how many {extra_unit}?",
        "Sorry, how many {extra_unit} would that be?",
    ),
    "confirm_quote": (
        "{summary} Shall I get your price?",
        "{summary} Is that all correct?",
    ),
    "correcting": (
        "No problem, what would you like to change?",
        "Sorry, what should I change?",
    ),
    "offer_booking": (
        "Would you like to go ahead and book?",
        "Shall I book that in for you? Yes or no is fine.",
    ),
    "need_full_name": (
        "Lovely. Can I take your full name?",
        "Sorry, could you say your full name again?",
    ),
    "need_phone": (
        "What's the best phone number to reach you on?",
        "Sorry, could you read the number out digit by digit?",
    ),
    "need_email": (
        "And your email address for the confirmation?",
        "Sorry, could you spell the email, saying at and dot?",
    ),
    "need_address": (
        "What's the first line of the address to be cleaned?",
        "Sorry, could you give me the house number and street?",
    ),
    "need_booking_postcode": (
        "And the postcode for the address?",
        "Could you spell the postcode letter by letter?",
    ),
    "need_date": (
        "Which day would suit you for the clean?",
        "Sorry, which date works for you?",
    ),
    "need_time": (
        "And what time of day works best?",
        "Sorry, morning, afternoon, or a particular time?",
    ),
    "callback_name": (
        "I'll get one of the team to call you back with your price. Can I take your name?",
        "Sorry, what name should the team ask for?",
    ),
    "callback_phone": (
        "And the best number for the callback?",
        "Sorry, could you read the number out digit by digit?",
    ),
}

PROPERTY_OPTIONS = {
    "domestic": "a flat, a studio, or a terraced, semi-detached or detached house",
    "commercial": "an office, shop, school, clinic, warehouse, gym or venue",
}

EXTRAS_IMPACT = "Just so you know, extras can add to the price and the time needed."
FREQUENCY_CLARIFY = "I need to pin that down a bit for the price."
POSTCODE_FAILED_ACK = "Sorry, I'm still not getting that postcode."
FALLBACK_ACK = "Thanks, I've made a note of that."
PRICING_APOLOGY = (
    "Sorry, I couldn't get a price through just now. Let's try again from the postcode."
)
PRICING_APOLOGY_RECHECK = (
    "Sorry, I couldn't get a price through just now. Let me run through the details once more."
)
PRICING_CALLBACK = "Sorry, I can't give you an accurate price over the phone right now."
BOOKING_RETRY = "Sorry, that time didn't go through. Let's pick another day."
QUOTE_INVALIDATED = "No problem, I'll get you an updated price."
NOTHING_CHANGED = "Sorry, I didn't catch what to change."
NO_INPUT = "Sorry, I didn't hear anything."


def build_question(key: str, attempt: int = 0, **values: str) -> str:
    """Return the question for ``key``, worded by how often it has been asked."""
    variants = QUESTIONS[key]
    template = variants[min(attempt, len(variants) - 1)]
    return template.format(**values)


def format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return f"£{int(amount)}"
    return f"£{amount:.2f}"


def build_price_line(result: QuoteResult) -> str:
    """Spoken price, e.g. "Your price is £120. Includes two bathrooms."."""
    parts = []
    if result.amount is not None:
        parts.append(f"Your price is {format_amount(result.amount)}.")
    if result.explanation:
        parts.append(result.explanation.strip())
    if not parts:
        parts.append("I've got your price through.")
    return " ".join(parts)


def _count(n: int, noun: str) -> str:
    return f"{n} {noun}" if n == 1 else f"{n} {noun}s"


def _with_article(phrase: str) -> str:
    return f"an {phrase}" if phrase[:1] in ("a", "e", "i", "o", "u") else f"a {phrase}"


def describe_quote(quote: QuoteDraft) -> str:
    """Read-back summary of what will be priced."""
    service = quote.service_type.lower() or "clean"
    property_type = quote.property_type.lower() or "property"
    where = f" in {quote.postcode}" if quote.postcode else ""
    if not quote.postcode and quote.has_note(FALLBACK_LOCATION_NOTE):
        where = " at the location you gave me"
    lines = [f"So that's {_with_article(service)} for {_with_article(property_type)}{where}"]

    if quote.is_domestic and quote.bathrooms:
        rooms = []
        if quote.bedrooms:
            rooms.append(_count(quote.bedrooms, "bedroom"))
        rooms.append(_count(quote.bathrooms, "bathroom"))
        lines.append("with " + " and ".join(rooms))
    if quote.toilets:
        lines.append(_count(quote.toilets, "separate toilet"))
    if quote.kitchens:
        lines.append(_count(quote.kitchens, "kitchen"))
    if quote.preferred_hours:
        hours = quote.preferred_hours
        lines.append(f"{int(hours) if float(hours).is_integer() else hours} hours")
    if quote.areas_scope:
        lines.append(f"just the {quote.areas_scope}")
    confirmed = [e for e in quote.extras if e.quantity > 0]
    if confirmed:
        lines.append("plus " + ", ".join(
            f"{e.name.lower()} for {e.quantity} {get_extra_unit(e.name)}" for e in confirmed
        ))
    return ", ".join(lines) + "."


def build_booking_confirmation(reference: Optional[str]) -> str:
    ref = f" Your reference is {reference}." if reference else ""
    return (
        f"You're all booked in.{ref} You'll get a confirmation by email. "
        f"Thanks for calling {_biz.name}, goodbye."
    )


def build_booking_callback() -> str:
    return (
        "Sorry, I couldn't confirm the booking just now. "
        f"The team will call you {_biz.callback_window} to confirm it. Goodbye."
    )


def build_callback_closing() -> str:
    return (
        f"Thanks, the team will call you back {_biz.callback_window}. "
        f"Thanks for calling {_biz.name}, goodbye."
    )


def build_decline_closing() -> str:
    return f"No problem at all. Thanks for calling {_biz.name}, have a lovely day."
