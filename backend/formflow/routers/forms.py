from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse

from formflow.builder import FormBuilder, probe_options
from formflow.errors import NodeNotFoundError
from formflow.schemas import ApiConfig, Dependency, Form
from formflow.store import forms_store, sessions_store

router = APIRouter(prefix="/api/forms", tags=["forms"])


def _builder(form_id: str) -> FormBuilder:
    try:
        return forms_store.get(form_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")


def _current(builder: FormBuilder) -> Form:
    return builder.published or builder.to_form()


@router.get("")
async def list_forms():
    """Get a list of all forms with basic info."""
    return [s.model_dump() for s in forms_store.list()]


@router.post("")
async def upsert_form(form: Form):
    builder = forms_store.upsert(form)
    return {"status": "ok", "formId": builder.form_id}


@router.get("/{form_id}")
async def get_form(form_id: str):
    builder = _builder(form_id)
    return {**_current(builder).model_dump(), "published": builder.is_published}


@router.get("/{form_id}/export", response_class=PlainTextResponse)
async def export_form(form_id: str):
    """Pretty-printed JSON of the form schema, for copy/export."""
    return _current(_builder(form_id)).to_json(indent=2)


@router.delete("/{form_id}")
async def delete_form(form_id: str):
    """Delete a form and every preview session opened on it."""
    _builder(form_id)
    forms_store.delete(form_id)
    removed = sessions_store.delete_for_form(form_id)
    return {"status": "ok", "formId": form_id, "sessionsClosed": removed}


@router.post("/{form_id}/publish")
async def publish_form(form_id: str):
    form = _builder(form_id).publish()
    return {"status": "ok", "formId": form.id, "version": form.version}


@router.post("/{form_id}/unpublish")
async def unpublish_form(form_id: str):
    _builder(form_id).unpublish()
    return {"status": "ok", "formId": form_id}


@router.get("/{form_id}/fields/{field_id}/dependency-candidates")
async def dependency_candidates(form_id: str, field_id: str):
    """Fields this field may depend on without creating a cycle."""
    candidates = _builder(form_id).dependency_candidates(field_id)
    return [{"id": f.id, "label": f.label, "type": f.type} for f in candidates]


@router.put("/{form_id}/fields/{field_id}/dependency")
async def set_dependency(form_id: str, field_id: str, dependency: Dependency):
    field = _builder(form_id).set_dependency(field_id, dependency.fieldId, dependency.value)
    return {"status": "ok", "fieldId": field.id, "dependency": field.dependency.model_dump()}


@router.delete("/{form_id}/fields/{field_id}/dependency")
async def clear_dependency(form_id: str, field_id: str):
    _builder(form_id).clear_dependency(field_id)
    return {"status": "ok", "fieldId": field_id}


@router.post("/probe")
def probe_data_source(api_config: ApiConfig):
    """Fetch a data source once and show the options it maps to."""
    return [o.model_dump() for o in probe_options(api_config)]
