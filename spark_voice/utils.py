"""Shared utilities used across the dialogue engine."""

import re

SPOKEN_DIGITS: dict[str, str] = {
    "zero": "0", "oh": "0", "o": "0", "nought": "0",
    "one": "1", "two": "2", "three": "3", "four": "4", "five": "5",
    "six": "6", "seven": "7", "eight": "8", "nine": "9",
}

_REPEATS = {"double": 2, "triple": 3}


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("07700 900 123")
        '07700900123'
        >>> normalize_phone("+44 (7700) 900-123")
        '+447700900123'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def spoken_digits_to_text(value: str) -> str:
    """Replace spoken digits ("oh seven seven", "double nine") with numerals.

    Examples:
        >>> spoken_digits_to_text("oh seven seven double oh")
        '07700'
    """
    tokens = re.sub(r"[^a-z0-9+\s]", " ", value.lower()).split()
    out: list[str] = []
    repeat = 1
    for token in tokens:
        if token in _REPEATS:
            repeat = _REPEATS[token]
            continue
        if token in SPOKEN_DIGITS:
            out.append(SPOKEN_DIGITS[token] * repeat)
        elif re.fullmatch(r"\+?\d+", token):
            out.append(token * repeat)
        else:
            out.append(" ")
        repeat = 1
    return re.sub(r"\s+", " ", "".join(out)).strip()


def normalize_email(value: str) -> str:
    """Turn a spoken email address into its written form.

    Examples:
        >>> normalize_email("Jane dot Smith at gmail dot com")
        'jane.smith@gmail.com'
    """
    text = value.lower().strip()
    text = re.sub(r"\s+(?:at|@)\s+", "@", text)
    text = re.sub(r"\s+(?:dot|\.)\s+", ".", text)
    text = re.sub(r"\s+(?:underscore)\s+", "_", text)
    text = re.sub(r"\s+(?:dash|hyphen)\s+", "-", text)
    text = re.sub(r"\s+", "", text)
    return text.rstrip(".")
