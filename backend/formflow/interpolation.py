import re
from typing import Any, Dict, List, Mapping, Optional

# whole-string placeholder: ${fieldId} or ${fieldId.prop}
EXPRESSION_RE = re.compile(r"^\$\{(\w[\w-]*)(?:\.(\w+))?\}$")
# any ${key} occurrence inside a URL template
URL_PLACEHOLDER_RE = re.compile(r"\$\{([^}]+)\}")


def _first_present(obj: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = obj.get(key)
        if value is not None:
            return value
    return None


def resolve_reference(value: Any, prop: Optional[str]) -> Any:
    """Resolve one referenced field value to what a parameter should carry."""
    if value is None:
        return ""

    if isinstance(value, list):
        if prop:
            if value and isinstance(value[0], Mapping):
                found = value[0].get(prop)
                return "" if found is None else found
            return ""
        out = []
        for item in value:
            if isinstance(item, Mapping):
                picked = _first_present(item, "label", "id", "value")
                out.append(item if picked is None else picked)
            else:
                out.append(item)
        return out

    if isinstance(value, Mapping):
        if prop:
            found = value.get(prop)
            return "" if found is None else found
        picked = _first_present(value, "label", "id", "value")
        return "" if picked is None else picked

    return value


def interpolate(params: Mapping[str, Any], env: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Replace ${fieldId} / ${fieldId.prop} parameter values with values from env.

    Non-matching strings and non-string values pass through unchanged.
    """
    result: Dict[str, Any] = {}
    for key, val in (params or {}).items():
        if isinstance(val, str):
            match = EXPRESSION_RE.match(val)
            if match:
                field_id, prop = match.group(1), match.group(2)
                result[key] = resolve_reference(env.get(field_id), prop)
                continue
        result[key] = val
    return result


def _url_text(value: Any) -> str:
    if value is None or isinstance(value, (Mapping, list)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def interpolate_url(url: str, env: Mapping[str, Any]) -> str:
    return URL_PLACEHOLDER_RE.sub(lambda m: _url_text(env.get(m.group(1))), url or "")


def placeholders(params: Mapping[str, Any]) -> List[str]:
    """Field ids referenced by the expressions in a params map, in order."""
    ids: List[str] = []
    for val in (params or {}).values():
        if isinstance(val, str):
            match = EXPRESSION_RE.match(val)
            if match and match.group(1) not in ids:
                ids.append(match.group(1))
    return ids


def blank_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    # probe requests have no value environment: every expression becomes ""
    return {
        key: "" if isinstance(val, str) and EXPRESSION_RE.match(val) else val
        for key, val in (params or {}).items()
    }


def is_empty(value: Any) -> bool:
    """None, "", an empty dict or an empty list."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (Mapping, list, tuple)):
        return len(value) == 0
    return False
