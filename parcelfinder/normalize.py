import re
from typing import Any, List, Optional, Tuple

NON_DIGIT_RE = re.compile(r"\D+")

# Calling code -> minimum digit count (code included) before the code may be
# swapped for a leading 0. Shorter strings would lose subscriber digits.
LOCAL_FORM_RULES = (
    ("33", 10),  # France
    ("32", 10),  # Belgium
    ("41", 11),  # Switzerland
)


def clean_identifier(value: Any) -> Optional[str]:
    """Trim a raw identifier; blank or non-string values become None."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def digits_only(value: str) -> str:
    return NON_DIGIT_RE.sub("", value or "")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_country(country: Any) -> Optional[str]:
    """Upper-case a country code; blank or non-string values become None."""
    cleaned = clean_identifier(country)
    return cleaned.upper() if cleaned else None


def normalize_tracking_number(tracking_number: str) -> str:
    """Drop inner whitespace OCR tends to add ("LE 1234 5678 9FR")."""
    return "".join((tracking_number or "").split()).upper()


def phone_candidates(raw_phone: str) -> Tuple[str, ...]:
    """
    Derive the phone forms an order backend may have stored for one number.

    Generation order is fixed and meaningful: the engine prefers matches
    for earlier candidates. Duplicates keep their first position.

        >>> phone_candidates("06 12 34 56 78")
        ('0612345678', '+0612345678', '000612345678', '33612345678', '+33612345678')
    """
    digits = digits_only(raw_phone)
    if not digits:
        return ()

    forms: List[str] = [digits, f"+{digits}", f"00{digits}"]

    france_code, france_min = LOCAL_FORM_RULES[0]
    if digits.startswith(france_code) and len(digits) >= france_min:
        forms.append("0" + digits[len(france_code):])

    if digits.startswith("0") and len(digits) == 10:
        forms.append(france_code + digits[1:])
        forms.append(f"+{france_code}" + digits[1:])

    for code, min_length in LOCAL_FORM_RULES[1:]:
        if digits.startswith(code) and len(digits) >= min_length:
            forms.append("0" + digits[len(code):])

    # dedupe while preserving order
    seen = set()
    result = []
    for form in forms:
        if form not in seen:
            seen.add(form)
            result.append(form)
    return tuple(result)
