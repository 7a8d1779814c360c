import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from formflow.errors import DependencyCycleError
from formflow.interpolation import is_empty
from formflow.schemas import Column, Section

logger = logging.getLogger(__name__)

ANY_VALUE = "*"


def _value_matches(target: Any, value: Any, expected: Any) -> bool:
    if expected == ANY_VALUE:
        return not is_empty(value)
    if isinstance(value, Mapping):
        return value.get("id") == expected or value.get("label") == expected
    if target.type == "checkbox" and isinstance(value, list):
        return any(isinstance(o, Mapping) and o.get("id") == expected for o in value)
    return value == expected


def is_visible(
    field: Any,
    siblings: Sequence[Any],
    env: Mapping[str, Any],
    _visited: Optional[Set[str]] = None,
) -> bool:
    """
    Whether a field is shown given the current values.

    The dependency target is looked up among ``siblings`` only (the fields of
    the same section). A missing target means the field is visible. A field
    whose target is hidden is hidden as well.
    """
    dep = field.dependency
    if dep is None:
        return True

    visited = set() if _visited is None else _visited
    if field.id in visited:
        logger.warning("Dependency cycle through field %s; treating it as visible", field.id)
        return True
    visited.add(field.id)

    target = next((f for f in siblings if f.id == dep.fieldId), None)
    if target is None:
        return True
    if not is_visible(target, siblings, env, visited):
        return False
    return _value_matches(target, env.get(target.id), dep.value)


def is_cell_visible(column: Column, row: Mapping[str, Any]) -> bool:
    """Row-scoped variant for table columns; the target is another cell of the row."""
    dep = column.dependency
    if dep is None:
        return True
    value = row.get(dep.fieldId)
    if dep.value == ANY_VALUE:
        if isinstance(value, Mapping):
            return len(value) > 0
        return value is not None and value != ""
    if isinstance(value, Mapping):
        return value.get("id") == dep.value or value.get("label") == dep.value
    return value == dep.value


def visible_fields(section: Section, env: Mapping[str, Any]) -> List[Any]:
    return [f for f in section.fields if is_visible(f, section.fields, env)]


# --- cycle-safe dependency assignment ---


def dependency_edges(field: Any) -> List[str]:
    """Ids this field points at through its dependency and its apiConfig.dependsOn."""
    ids: List[str] = []
    if field.dependency is not None:
        ids.append(field.dependency.fieldId)
    api = getattr(field, "apiConfig", None)
    if api is not None:
        ids.extend(api.dependsOn)
    return ids


def depends_on(
    fields_by_id: Dict[str, Any],
    candidate_id: str,
    current_id: str,
    _visited: Optional[Set[str]] = None,
) -> bool:
    """True when candidate_id reaches current_id, directly or transitively."""
    if candidate_id == current_id:
        return True
    visited = set() if _visited is None else _visited
    if candidate_id in visited:
        return False
    visited.add(candidate_id)

    candidate = fields_by_id.get(candidate_id)
    if candidate is None:
        return False
    for dep_id in dependency_edges(candidate):
        if depends_on(fields_by_id, dep_id, current_id, visited):
            return True
    return False


def dependency_candidates(fields: Iterable[Any], field_id: str) -> List[Any]:
    """Fields that ``field_id`` may depend on without closing a cycle."""
    fields = list(fields)
    by_id = {f.id: f for f in fields}
    return [f for f in fields if f.id != field_id and not depends_on(by_id, f.id, field_id)]


def check_edges(fields: Iterable[Any], field_id: str, targets: Iterable[str]) -> None:
    by_id = {f.id: f for f in fields}
    for target_id in targets:
        if depends_on(by_id, target_id, field_id):
            raise DependencyCycleError(field_id, target_id)
