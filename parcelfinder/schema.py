from typing import Any, Dict, List, Tuple

IDENTIFIER_FIELDS = [
    "email",
    "phone",
    "order_number",
    "tracking_number",
    "customer_first_name",
]

# Where the extraction step nests each field when it does not send a flat dict
NESTED_FIELD_PATHS: Dict[str, Tuple[str, str]] = {
    "email": ("customer", "email"),
    "phone": ("customer", "phone"),
    "customer_first_name": ("customer", "first_name"),
    "order_number": ("order", "order_number"),
    "tracking_number": ("shipment", "tracking_number"),
}


def _is_scalar_identifier(v: Any) -> bool:
    # Order numbers regularly come back as JSON numbers
    return isinstance(v, str) or (isinstance(v, (int, float)) and not isinstance(v, bool))


def flatten_identifier_payload(data: Any) -> Dict[str, Any]:
    """Collapse the nested extractor shape onto the flat field names.

    Flat keys win over nested ones. Absent fields are simply missing.
    """
    if not isinstance(data, dict):
        return {}
    flat: Dict[str, Any] = {}
    for f in IDENTIFIER_FIELDS:
        if data.get(f) is not None:
            flat[f] = data[f]
            continue
        section, key = NESTED_FIELD_PATHS[f]
        nested = data.get(section)
        if isinstance(nested, dict) and nested.get(key) is not None:
            flat[f] = nested[key]
    return flat


def validate_identifier_payload(data: Any) -> List[str]:
    """
    Returns a list of problems found in a raw identifier payload.
    Empty list means every present field is usable. Absence is never a problem.
    """
    if data is None:
        return []
    if not isinstance(data, dict):
        return [f"Identifier payload must be an object, got {type(data).__name__}"]

    errors: List[str] = []
    for f, v in flatten_identifier_payload(data).items():
        if not _is_scalar_identifier(v):
            errors.append(f"Field '{f}' must be a string if provided")
        elif isinstance(v, str) and not v.strip():
            errors.append(f"Field '{f}' is blank")
    return errors
