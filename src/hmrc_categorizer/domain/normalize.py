import re
from functools import lru_cache

_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)

_DATE_PATTERNS = (
    re.compile(r"\b\d{4}[/.-]\d{1,2}[/.-]\d{1,2}\b"),
    re.compile(r"\b\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}\b"),
    re.compile(rf"\b\d{{1,2}}(?:st|nd|rd|th)?[\s-]?{_MONTHS}(?:[\s-]?\d{{2,4}})?\b"),
    re.compile(rf"\b{_MONTHS}[\s-]\d{{1,2}}(?:st|nd|rd|th)?(?:,?\s\d{{4}})?\b"),
)

# Runs after punctuation has been replaced, so "REF:456" arrives as "ref 456"
_REFERENCE_PATTERN = re.compile(
    r"\b(?:ref|reference|txn|trn|trx|tx|id|inv|no|auth|seq)\s*\d[\w-]*"
)
_NON_WORD = re.compile(r"[^\w\s-]|_")
_WHITESPACE = re.compile(r"\s+")

_SYSTEM_PREFIXES = (
    "card payment to",
    "card payment",
    "card purchase",
    "payment to",
    "payment from",
    "direct debit",
    "standing order",
    "faster payment",
    "bill payment",
    "bank giro credit",
    "dd",
    "so",
    "bp",
    "fp",
    "fpi",
    "fpo",
    "bgc",
    "pos",
    "atm",
    "chq",
    "tfr",
    "vis",
    "visa",
)
_PREFIX_PATTERN = re.compile(
    r"^(?:" + "|".join(re.escape(prefix) for prefix in _SYSTEM_PREFIXES) + r")(?:\s+|$)"
)


def _is_noise_token(token: str) -> bool:
    if not token.strip("-"):
        return True
    if token.isdigit():
        return len(token) >= 5
    has_digit = any(char.isdigit() for char in token)
    has_alpha = any(char.isalpha() for char in token)
    return has_digit and has_alpha and len(token) >= 6


def _normalize_once(text: str) -> str:
    text = text.lower()
    for pattern in _DATE_PATTERNS:
        text = pattern.sub(" ", text)
    text = _NON_WORD.sub(" ", text)
    text = _REFERENCE_PATTERN.sub(" ", text)
    tokens = [token for token in text.split() if not _is_noise_token(token)]
    text = " ".join(tokens)
    while True:
        stripped = _PREFIX_PATTERN.sub("", text, count=1)
        if stripped == text:
            break
        text = stripped
    return _WHITESPACE.sub(" ", text).strip()


def normalize_description(description: str | None) -> str:
    """
    Strip bank noise (reference codes, dates, IDs, system prefixes) from a
    transaction description and return lowercase, single-spaced text.

    Each pass only removes characters once the text is lowercase, so the loop
    reaches a fixed point and normalizing twice changes nothing.
    """
    if not description:
        return ""
    text = str(description)
    while True:
        cleaned = _normalize_once(text)
        if cleaned == text:
            return cleaned
        text = cleaned


@lru_cache(maxsize=1024)
def _term_pattern(term: str) -> re.Pattern[str]:
    return re.compile(r"(?<![a-z0-9])" + re.escape(term.lower()) + r"(?![a-z0-9])")


def contains_term(text: str, term: str) -> bool:
    """Whole-word (or whole-phrase) containment, so "dress" does not hit "address"."""
    return _term_pattern(term).search(text.lower()) is not None


def first_matching_term(text: str, terms: tuple[str, ...] | list[str]) -> str | None:
    for term in terms:
        if contains_term(text, term):
            return term
    return None
