"""
UK postcode decoder for spoken input.

Turns what a caller actually says into a canonical postcode:

    "sierra whiskey one alpha one alpha alpha"  -> "SW1A 1AA"
    "S for Sun, W as in Winter, 1A 1AA"         -> "SW1A 1AA"
    "S double u one A one double A"             -> "SW1A 1AA"

Anything that does not resolve to the UK postcode shape returns None;
retry policy belongs to the orchestrator.
"""

import re
from typing import Optional

DIGIT_WORDS: dict[str, str] = {
    "zero": "0", "oh": "0",
    "one": "1", "two": "2", "three": "3",
    "four": "4", "five": "5", "six": "6",
    "seven": "7", "eight": "8", "nine": "9",
}

NATO: dict[str, str] = {
    "alpha": "A", "alfa": "A", "bravo": "B", "charlie": "C", "delta": "D",
    "echo": "E", "foxtrot": "F", "golf": "G", "hotel": "H", "india": "I",
    "juliet": "J", "juliett": "J", "kilo": "K", "lima": "L", "mike": "M",
    "november": "N", "oscar": "O", "papa": "P", "quebec": "Q", "romeo": "R",
    "sierra": "S", "tango": "T", "uniform": "U", "victor": "V",
    "whiskey": "W", "whisky": "W", "xray": "X", "x-ray": "X",
    "yankee": "Y", "zulu": "Z",
}

LETTER_NAMES: dict[str, str] = {"zed": "Z", "zee": "Z"}

POSTCODE_SHAPE = re.compile(r"^[A-Z]{1,2}[0-9][A-Z0-9]?[0-9][A-Z]{2}$")

# "S for Sun", "W as in Winter", "M like Mother"
_PHONETIC_PAIR = re.compile(r"(^|[\s,])([a-z])\s*(?:for|as in|like)\s+[a-z]+", re.IGNORECASE)

MAX_LITERAL_TOKEN_LENGTH = 7

# Lead-ins and acknowledgements callers wrap around a postcode. None of
# them is a UK postcode area, so dropping them never loses a character.
FILLER_WORDS = frozenset({
    "my", "the", "our", "postcode", "post", "code", "is", "it", "its", "thats", "that",
    "and", "um", "umm", "erm", "er", "uh", "yes", "yeah", "yep", "no", "nope",
    "actually", "sorry", "ok", "okay", "well", "right", "please",
})


def looks_like_uk_postcode(compact: str) -> bool:
    return bool(POSTCODE_SHAPE.match(compact))


def format_uk_postcode(compact: str) -> str:
    """Insert the single space before the inward code."""
    return f"{compact[:-3]} {compact[-3:]}"


def normalize_postcode(value: str) -> Optional[str]:
    """Canonicalize an already-written postcode ("sw1a1aa" -> "SW1A 1AA")."""
    compact = re.sub(r"[^A-Z0-9]", "", value.upper())
    if not looks_like_uk_postcode(compact):
        return None
    return format_uk_postcode(compact)


def _resolve_tokens(tokens: list[str]) -> Optional[list[str]]:
    """Map each spoken token to the characters it stands for.

    Returns None as soon as one token stands for nothing.
    """
    symbols: list[str] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        following = tokens[i + 1] if i + 1 < len(tokens) else ""

        if token == "double" and following == "u":
            symbols.append("W")
            i += 2
            continue

        if token == "double" and following:
            repeated = _resolve_single(following)
            if repeated is not None and len(repeated) == 1:
                symbols.append(repeated * 2)
                i += 2
                continue

        resolved = _resolve_single(token)
        if resolved is None:
            return None
        symbols.append(resolved)
        i += 1
    return symbols


def _resolve_single(token: str) -> Optional[str]:
    if re.fullmatch(r"[a-z]", token):
        return token.upper()
    if token in NATO:
        return NATO[token]
    if token in LETTER_NAMES:
        return LETTER_NAMES[token]
    if token in DIGIT_WORDS:
        return DIGIT_WORDS[token]
    if re.fullmatch(r"[a-z0-9]+", token) and len(token) <= MAX_LITERAL_TOKEN_LENGTH:
        return token.upper()
    return None


def extract_uk_postcode(raw: Optional[str]) -> Optional[str]:
    """Decode a spoken postcode. Returns "OUT INW" or None.

    Only the words in FILLER_WORDS are dropped; every other token counts,
    so the whole remaining utterance has to spell the postcode.
    """
    text = str(raw or "")
    if not text.strip():
        return None

    # Each phonetic pair collapses to its letter, in place.
    text = _PHONETIC_PAIR.sub(lambda m: f"{m.group(1)}{m.group(2)} ", text)

    # "it's" must stay one token or its "s" can join the outward code.
    text = re.sub(r"['’]", "", text)
    cleaned = re.sub(r"[^a-z0-9\s-]", " ", text.lower())
    tokens = [
        t for t in re.sub(r"\s+", " ", cleaned).strip().split(" ")
        if t.strip("-") and t not in FILLER_WORDS
    ]

    symbols = _resolve_tokens(tokens)
    if symbols is None:
        return None
    compact = "".join(symbols)
    if not looks_like_uk_postcode(compact):
        return None
    return format_uk_postcode(compact)
