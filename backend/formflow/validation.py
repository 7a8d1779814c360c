import logging
import re
from typing import Any, Dict, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

REQUIRED = "This field is required"
SELECT_ONE = "Please select an option"
SELECT_AT_LEAST_ONE = "Please select at least one option"
PATTERN_MISMATCH = "Value does not match the required pattern"


def _is_blank(value: Any) -> bool:
    # only these count as "no value"; False and 0 are values
    if value is None:
        return True
    if isinstance(value, (str, list, tuple)):
        return len(value) == 0
    return False


def _no_selection(value: Any) -> bool:
    return _is_blank(value) or (isinstance(value, Mapping) and len(value) == 0)


def _check_text(field: Any, value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    text = value if isinstance(value, str) else str(value)
    if field.minLength and len(text) < field.minLength:
        return f"Minimum {field.minLength} characters required"
    if field.maxLength and len(text) > field.maxLength:
        return f"Maximum {field.maxLength} characters allowed"
    if field.pattern:
        try:
            matched = re.search(field.pattern, text)
        except re.error as e:
            logger.warning("Ignoring invalid pattern on field %s: %s", field.id, e)
            return None
        if not matched:
            return PATTERN_MISMATCH
    return None


def validate_field(field: Any, value: Any) -> Optional[str]:
    """Return the error message for one field's value, or None when valid."""
    if field.disabled:
        return None
    if field.required and _is_blank(value):
        return REQUIRED

    # the selection checks below only see values that passed the required check
    kind = field.type
    if kind == "text":
        return _check_text(field, value)
    if kind == "dropdown":
        if field.required and _no_selection(value):
            return SELECT_ONE
        if field.allowMultiple and field.required and isinstance(value, list) and not value:
            return SELECT_AT_LEAST_ONE
        return None
    if kind == "radio":
        if field.required and _no_selection(value):
            return SELECT_ONE
        return None
    if kind == "checkbox":
        if field.required and _is_blank(value):
            return SELECT_AT_LEAST_ONE
        return None
    if kind in ("textarea", "date", "switch", "table"):
        return None
    raise ValueError(f"unknown field type {kind!r}")


def validate_fields(fields: Iterable[Any], env: Mapping[str, Any]) -> Dict[str, str]:
    """fieldId -> message for every failing field in ``fields``."""
    errors: Dict[str, str] = {}
    for f in fields:
        message = validate_field(f, env.get(f.id))
        if message:
            errors[f.id] = message
    return errors
