import json
import re
from datetime import datetime
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from formflow.errors import ConfigurationError


FieldType = Literal["text", "textarea", "date", "radio", "dropdown", "checkbox", "switch", "table"]
Method = Literal["GET", "POST"]

# field types whose apiConfig populates an option list
CHOICE_TYPES = ("dropdown", "radio", "checkbox")
# field types whose apiConfig autofills other fields on commit
AUTOFILL_TYPES = ("text", "date")

# fieldId -> current value
ValueEnvironment = Dict[str, Any]


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


OptionalKey = Annotated[Optional[str], BeforeValidator(_blank_to_none)]


class Option(BaseModel):
    """One selectable choice. Extra keys from a remote source are kept."""

    model_config = ConfigDict(extra="allow")

    id: Any
    label: Any = None


class MapOptions(BaseModel):
    idKey: OptionalKey = None
    labelKey: OptionalKey = None


class ApiConfig(BaseModel):
    url: str = ""
    method: Method = "GET"
    params: Dict[str, Any] = Field(default_factory=dict)
    mapOptions: MapOptions = Field(default_factory=MapOptions)
    responsePath: OptionalKey = None
    dependsOn: List[str] = Field(default_factory=list)
    # apiResponseKey -> target field id (text/date autofill only)
    responseMap: Optional[Dict[str, str]] = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("dependsOn", mode="before")
    @classmethod
    def _split_depends_on(cls, v: Any) -> Any:
        # the builder UI edits this as "a, b, c"
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        return v if v is not None else []

    @staticmethod
    def parse_params_text(text: str) -> Dict[str, Any]:
        """Parse the JSON typed into a params editor."""
        try:
            parsed = json.loads(text or "{}")
        except ValueError:
            raise ConfigurationError("Params must be valid JSON")
        if not isinstance(parsed, dict):
            raise ConfigurationError("Params must be a JSON object")
        return parsed


class Dependency(BaseModel):
    fieldId: str
    # "*" means: any non-empty value
    value: Any = "*"


def _unique_option_ids(options: List[Option]) -> List[Option]:
    seen = set()
    for opt in options:
        key = json.dumps(opt.id, sort_keys=True, default=str)
        if key in seen:
            raise ValueError(f"duplicate option id {opt.id!r}")
        seen.add(key)
    return options


OptionList = Annotated[List[Option], AfterValidator(_unique_option_ids)]


class Column(BaseModel):
    id: str
    label: str = ""
    type: Literal["text", "dropdown"] = "text"
    required: bool = False
    options: OptionList = Field(default_factory=list)
    apiConfig: Optional[ApiConfig] = None
    # fieldId names another column of the same row
    dependency: Optional[Dependency] = None


class FieldBase(BaseModel):
    id: str = Field(frozen=True)
    label: str = ""
    description: str = ""
    placeholder: str = ""
    required: bool = False
    disabled: bool = False
    readOnly: bool = False
    dependency: Optional[Dependency] = None


class ChoiceFieldBase(FieldBase):
    options: OptionList = Field(default_factory=list)
    apiConfig: Optional[ApiConfig] = None


class TextField(FieldBase):
    type: Literal["text"] = "text"
    minLength: Optional[int] = None
    maxLength: Optional[int] = None
    pattern: Optional[str] = None
    apiConfig: Optional[ApiConfig] = None

    @field_validator("pattern", mode="before")
    @classmethod
    def _compile_pattern(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"invalid regular expression: {e}")
        return v


class TextareaField(FieldBase):
    type: Literal["textarea"] = "textarea"


class DateField(FieldBase):
    type: Literal["date"] = "date"
    apiConfig: Optional[ApiConfig] = None


class RadioField(ChoiceFieldBase):
    type: Literal["radio"] = "radio"


class DropdownField(ChoiceFieldBase):
    type: Literal["dropdown"] = "dropdown"
    allowMultiple: bool = False


class CheckboxField(ChoiceFieldBase):
    type: Literal["checkbox"] = "checkbox"


class SwitchField(FieldBase):
    type: Literal["switch"] = "switch"


class TableField(FieldBase):
    type: Literal["table"] = "table"
    columns: List[Column] = Field(default_factory=list)

    def column(self, column_id: str) -> Optional[Column]:
        return next((c for c in self.columns if c.id == column_id), None)


FormField = Annotated[
    Union[
        TextField,
        TextareaField,
        DateField,
        RadioField,
        DropdownField,
        CheckboxField,
        SwitchField,
        TableField,
    ],
    Field(discriminator="type"),
]

FIELD_CLASSES = {
    "text": TextField,
    "textarea": TextareaField,
    "date": DateField,
    "radio": RadioField,
    "dropdown": DropdownField,
    "checkbox": CheckboxField,
    "switch": SwitchField,
    "table": TableField,
}


class Section(BaseModel):
    id: str = Field(frozen=True)
    type: Literal["section"] = "section"
    label: str = "Untitled Section"
    description: str = ""
    # display-grid arity, unrelated to table columns
    columns: int = 1
    fields: List[FormField] = Field(default_factory=list)

    @field_validator("columns", mode="before")
    @classmethod
    def _clamp_columns(cls, v: Any) -> int:
        try:
            v = int(v)
        except (TypeError, ValueError):
            return 1
        return max(1, min(4, v))


class Form(BaseModel):
    id: str = ""
    name: str = ""
    version: int = 1
    sections: List[Section] = Field(default_factory=list)

    def iter_fields(self) -> Iterator[Any]:
        for section in self.sections:
            yield from section.fields

    def find_field(self, field_id: str) -> Optional[Any]:
        return next((f for f in self.iter_fields() if f.id == field_id), None)

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent)

    @classmethod
    def from_json(cls, text: str) -> "Form":
        """Load a form from JSON; a bare array of sections is also accepted."""
        try:
            data = json.loads(text)
        except ValueError as e:
            raise ConfigurationError(f"Form is not valid JSON: {e}")
        if isinstance(data, list):
            data = {"sections": data}
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(str(e))


# --- HTTP payloads ---


class FormSummary(BaseModel):
    id: str
    name: str
    version: int
    createdAt: datetime


class ValuesIn(BaseModel):
    values: Dict[str, Any]


class ValueIn(BaseModel):
    value: Any = None


class CellIn(BaseModel):
    columnId: str
    value: Any = None


class SessionOut(BaseModel):
    sessionId: str
    formId: str
    values: Dict[str, Any]
    visibleFields: List[str]
    createdAt: datetime


class SubmissionOut(BaseModel):
    formId: str
    accepted: bool
    errors: Dict[str, str]
    values: Optional[Dict[str, Any]] = None
    submittedAt: Optional[datetime] = None
