"""
Incremental form editing.

Nodes live in a flat id -> node map. Sections keep ordered lists of child
field ids and every field knows its section, so find/update/delete are map
lookups plus one list edit instead of rewriting a nested tree.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from formflow.errors import ConfigurationError, FormLockedError, NodeNotFoundError
from formflow.interpolation import blank_params, interpolate_url
from formflow.options import extract_path, map_options
from formflow.schemas import CHOICE_TYPES, FIELD_CLASSES, ApiConfig, Dependency, Form, Option, Section
from formflow.transport import fetch_json_blocking
from formflow.visibility import check_edges, dependency_candidates, dependency_edges

logger = logging.getLogger(__name__)

# attributes the builder never lets an update touch
IMMUTABLE_ATTRS = ("id", "type")


def _new_id() -> str:
    return str(uuid.uuid4())


def _default_field_attrs(field_type: str) -> Dict[str, Any]:
    attrs: Dict[str, Any] = {"label": f"{field_type.capitalize()} Field"}
    if field_type in CHOICE_TYPES:
        attrs["options"] = [
            {"id": _new_id(), "label": "Option 1"},
            {"id": _new_id(), "label": "Option 2"},
        ]
    elif field_type == "table":
        attrs["columns"] = [{"id": _new_id(), "label": "Column 1", "type": "text"}]
    return attrs


def _validated(cls, data: Dict[str, Any]):
    try:
        return cls.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e


class FormBuilder:
    def __init__(self, form_id: str = "", name: str = "", version: int = 1):
        self.form_id = form_id or _new_id()
        self.name = name
        self.version = version
        self._nodes: Dict[str, Any] = {}
        self._section_ids: List[str] = []
        self._children: Dict[str, List[str]] = {}
        self._parent: Dict[str, str] = {}
        self._draft: Optional[Form] = None
        self._published: Optional[Form] = None

    # --- lookup ---

    def get(self, node_id: str) -> Any:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id)

    def _section(self, section_id: str) -> Section:
        node = self.get(section_id)
        if not isinstance(node, Section):
            raise NodeNotFoundError(section_id)
        return node

    def _field(self, field_id: str) -> Any:
        if field_id not in self._parent:
            raise NodeNotFoundError(field_id)
        return self._nodes[field_id]

    def section_of(self, field_id: str) -> str:
        self._field(field_id)
        return self._parent[field_id]

    def sections(self) -> List[Section]:
        return [self._nodes[sid] for sid in self._section_ids]

    def section_fields(self, section_id: str) -> List[Any]:
        self._section(section_id)
        return [self._nodes[fid] for fid in self._children[section_id]]

    def fields(self) -> List[Any]:
        return [self._nodes[fid] for sid in self._section_ids for fid in self._children[sid]]

    # --- lifecycle ---

    @property
    def is_published(self) -> bool:
        return self._published is not None

    @property
    def published(self) -> Optional[Form]:
        return self._published

    @property
    def draft(self) -> Optional[Form]:
        return self._draft

    def _ensure_editable(self) -> None:
        if self._published is not None:
            raise FormLockedError(f"Form {self.form_id} is published; unpublish it to edit")

    def save_draft(self) -> Form:
        self._draft = self.to_form()
        return self._draft

    def restore_draft(self) -> None:
        self._ensure_editable()
        if self._draft is None:
            raise ConfigurationError("No draft has been saved")
        self._load(self._draft)

    def publish(self) -> Form:
        if not self._section_ids:
            raise ConfigurationError("Cannot publish an empty form")
        self._published = self.to_form()
        logger.info("Published form %s (version %s)", self.form_id, self.version)
        return self._published

    def unpublish(self) -> None:
        self._published = None

    # --- sections ---

    def add_section(
        self,
        label: str = "Untitled Section",
        description: str = "",
        columns: int = 1,
        index: Optional[int] = None,
        section_id: Optional[str] = None,
    ) -> Section:
        self._ensure_editable()
        section_id = section_id or _new_id()
        if section_id in self._nodes:
            raise ConfigurationError(f"Duplicate id {section_id!r}")
        section = _validated(
            Section, {"id": section_id, "label": label, "description": description, "columns": columns}
        )
        self._nodes[section_id] = section
        self._children[section_id] = []
        if index is None:
            self._section_ids.append(section_id)
        else:
            self._section_ids.insert(index, section_id)
        return section

    def update_section(self, section_id: str, **updates: Any) -> Section:
        self._ensure_editable()
        section = self._section(section_id)
        updates.pop("fields", None)
        data = {**section.model_dump(), **updates, "id": section.id}
        section = _validated(Section, data)
        self._nodes[section_id] = section
        return section

    def move_section(self, from_index: int, to_index: int) -> None:
        self._ensure_editable()
        moved = self._section_ids.pop(from_index)
        self._section_ids.insert(to_index, moved)

    # --- fields ---

    def add_field(self, section_id: str, field_type: str, index: Optional[int] = None, **attrs: Any) -> Any:
        self._ensure_editable()
        self._section(section_id)
        cls = FIELD_CLASSES.get(field_type)
        if cls is None:
            raise ConfigurationError(f"Unknown field type {field_type!r}")
        field_id = attrs.pop("id", None) or _new_id()
        if field_id in self._nodes:
            raise ConfigurationError(f"Duplicate id {field_id!r}")

        defaults = _default_field_attrs(field_type)
        if attrs.get("apiConfig") is not None:
            defaults.pop("options", None)
        data = {**defaults, **attrs, "id": field_id, "type": field_type}
        field = _validated(cls, data)
        check_edges(self.fields(), field_id, dependency_edges(field))

        self._nodes[field_id] = field
        self._parent[field_id] = section_id
        children = self._children[section_id]
        if index is None:
            children.append(field_id)
        else:
            children.insert(index, field_id)
        return field

    def update_field(self, field_id: str, **updates: Any) -> Any:
        """Apply attribute updates; the result is revalidated and cycle-checked."""
        self._ensure_editable()
        field = self._field(field_id)
        for attr in IMMUTABLE_ATTRS:
            if attr in updates and updates[attr] != getattr(field, attr):
                raise ConfigurationError(f"Field {attr} cannot be changed")
            updates.pop(attr, None)

        data = {**field.model_dump(), **updates}
        updated = _validated(type(field), data)
        check_edges(self.fields(), field_id, dependency_edges(updated))
        self._nodes[field_id] = updated
        return updated

    def move_field(self, section_id: str, from_index: int, to_index: int) -> None:
        self._ensure_editable()
        self._section(section_id)
        children = self._children[section_id]
        moved = children.pop(from_index)
        children.insert(to_index, moved)

    def delete(self, node_id: str) -> None:
        """Remove a field, or a section together with its fields."""
        self._ensure_editable()
        node = self.get(node_id)
        if isinstance(node, Section):
            for fid in self._children.pop(node_id):
                del self._nodes[fid]
                del self._parent[fid]
            self._section_ids.remove(node_id)
        else:
            self._children[self._parent.pop(node_id)].remove(node_id)
        del self._nodes[node_id]

    # --- dependencies ---

    def dependency_candidates(self, field_id: str) -> List[Any]:
        self._field(field_id)
        return dependency_candidates(self.fields(), field_id)

    def set_dependency(self, field_id: str, target_id: str, value: Any = "*") -> Any:
        return self.update_field(field_id, dependency=Dependency(fieldId=target_id, value=value).model_dump())

    def clear_dependency(self, field_id: str) -> Any:
        return self.update_field(field_id, dependency=None)

    # --- option sources ---

    def set_api_config(self, field_id: str, api_config: Union[ApiConfig, Dict[str, Any], None]) -> Any:
        """Switch a field between a static and a remote option source."""
        field = self._field(field_id)
        if not hasattr(field, "apiConfig"):
            raise ConfigurationError(f"Field type {field.type!r} has no data source")
        if isinstance(api_config, ApiConfig):
            api_config = api_config.model_dump()
        updates: Dict[str, Any] = {"apiConfig": api_config}
        if api_config is not None and field.type in CHOICE_TYPES:
            updates["options"] = []
        return self.update_field(field_id, **updates)

    def set_api_params_text(self, field_id: str, text: str) -> Any:
        field = self._field(field_id)
        api = getattr(field, "apiConfig", None)
        if api is None:
            raise ConfigurationError(f"Field {field_id!r} has no data source")
        params = ApiConfig.parse_params_text(text)
        return self.set_api_config(field_id, {**api.model_dump(), "params": params})

    def add_option(self, field_id: str, label: str) -> Option:
        field = self._field(field_id)
        label = (label or "").strip()
        if not label:
            raise ConfigurationError("Option label cannot be empty")
        if not hasattr(field, "options"):
            raise ConfigurationError(f"Field type {field.type!r} has no options")
        option = Option(id=_new_id(), label=label)
        self.update_field(field_id, options=[*field.model_dump()["options"], option.model_dump()])
        return option

    def edit_option(self, field_id: str, index: int, label: str) -> Any:
        options = self._field(field_id).model_dump()["options"]
        options[index] = {**options[index], "label": label}
        return self.update_field(field_id, options=options)

    def remove_option(self, field_id: str, index: int) -> Any:
        options = self._field(field_id).model_dump()["options"]
        del options[index]
        return self.update_field(field_id, options=options)

    # --- conversion ---

    def to_form(self) -> Form:
        sections = [
            self._nodes[sid].model_copy(update={"fields": [self._nodes[fid] for fid in self._children[sid]]})
            for sid in self._section_ids
        ]
        return Form(id=self.form_id, name=self.name, version=self.version, sections=sections)

    def _load(self, form: Form) -> None:
        self._nodes.clear()
        self._section_ids.clear()
        self._children.clear()
        self._parent.clear()
        for section in form.sections:
            if section.id in self._nodes:
                raise ConfigurationError(f"Duplicate id {section.id!r}")
            self._nodes[section.id] = section.model_copy(update={"fields": []})
            self._section_ids.append(section.id)
            self._children[section.id] = []
            for field in section.fields:
                if field.id in self._nodes:
                    raise ConfigurationError(f"Duplicate id {field.id!r}")
                self._nodes[field.id] = field
                self._parent[field.id] = section.id
                self._children[section.id].append(field.id)
        fields = self.fields()
        for field in fields:
            check_edges(fields, field.id, dependency_edges(field))

    @classmethod
    def from_form(cls, form: Form) -> "FormBuilder":
        builder = cls(form_id=form.id, name=form.name, version=form.version)
        builder._load(form)
        return builder


def probe_options(api: ApiConfig) -> List[Option]:
    """
    Fetch a data source once, with every ${...} expression blanked, so the
    editor can preview what it returns. Raises RemoteSourceError on failure.
    """
    body = fetch_json_blocking(api.method, interpolate_url(api.url, {}), blank_params(api.params))
    return map_options(extract_path(body, api.responsePath), api.mapOptions)
