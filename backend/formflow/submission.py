import copy
import json
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from formflow.schemas import Form
from formflow.validation import validate_fields
from formflow.visibility import visible_fields


class SubmissionResult(BaseModel):
    accepted: bool
    errors: Dict[str, str] = Field(default_factory=dict)
    payload: Optional[Dict[str, Any]] = None
    visibleFields: List[str] = Field(default_factory=list)
    submittedAt: Optional[datetime] = None

    def to_json(self, indent: int = 2) -> str:
        """Pretty-printed payload (or error map) for copy/export."""
        body = self.payload if self.accepted else {"errors": self.errors}
        return json.dumps(body, indent=indent, default=str)


def collect_visible(form: Form, env: Mapping[str, Any]) -> List[Any]:
    # top-level fields of each section; table rows travel inside the value
    visible: List[Any] = []
    for section in form.sections:
        visible.extend(visible_fields(section, env))
    return visible


def assemble(form: Form, env: Mapping[str, Any]) -> SubmissionResult:
    """
    Validate the visible fields and, when they all pass, freeze the value
    environment as the submission payload.
    """
    visible = collect_visible(form, env)
    errors = validate_fields(visible, env)
    visible_ids = [f.id for f in visible]
    if errors:
        return SubmissionResult(accepted=False, errors=errors, visibleFields=visible_ids)
    return SubmissionResult(
        accepted=True,
        payload=copy.deepcopy(dict(env)),
        visibleFields=visible_ids,
        submittedAt=datetime.utcnow(),
    )
