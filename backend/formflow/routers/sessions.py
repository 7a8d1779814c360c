import json

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from formflow.errors import NodeNotFoundError
from formflow.schemas import CellIn, SessionOut, SubmissionOut, ValueIn, ValuesIn
from formflow.session import PreviewSession
from formflow.store import forms_store, get_transport, sessions_store
from formflow.transport import Transport

router = APIRouter(prefix="/api", tags=["sessions"])


def _session(session_id: str) -> PreviewSession:
    try:
        return sessions_store.get(session_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")


def _out(session: PreviewSession) -> SessionOut:
    return SessionOut(
        sessionId=session.id,
        formId=session.form.id,
        values=session.values,
        visibleFields=[f.id for f in session.visible_fields()],
        createdAt=session.createdAt,
    )


@router.post("/forms/{form_id}/sessions")
async def open_session(form_id: str, transport: Transport = Depends(get_transport)):
    """Start a preview session with an empty value environment."""
    try:
        builder = forms_store.get(form_id)
    except NodeNotFoundError:
        raise HTTPException(status_code=404, detail="Form not found")
    session = sessions_store.create(builder.published or builder.to_form(), transport)
    session.refresh()
    return _out(session)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    return _out(_session(session_id))


@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    _session(session_id)
    sessions_store.delete(session_id)
    return {"status": "ok", "sessionId": session_id}


@router.patch("/sessions/{session_id}/values")
async def set_values(session_id: str, body: ValuesIn):
    """Update field values; option fetches they trigger run in the background."""
    session = _session(session_id)
    session.set_values(body.values)
    session.refresh()
    return _out(session)


@router.get("/sessions/{session_id}/options")
async def get_options(session_id: str, wait: bool = Query(False, description="Wait for in-flight fetches")):
    session = _session(session_id)
    if wait:
        await session.drain()
    return session.option_snapshot()


@router.post("/sessions/{session_id}/fields/{field_id}/commit")
async def commit_value(session_id: str, field_id: str, body: ValueIn):
    """Commit a text/date value and apply its autofill mapping."""
    session = _session(session_id)
    updates = await session.commit(field_id, body.value)
    session.refresh()
    return {"status": "ok", "fieldId": field_id, "updates": updates}


@router.post("/sessions/{session_id}/tables/{field_id}/rows")
async def append_row(session_id: str, field_id: str):
    session = _session(session_id)
    rows = session.append_row(field_id)
    return {"status": "ok", "rows": rows}


@router.patch("/sessions/{session_id}/tables/{field_id}/rows/{row_index}")
async def update_cell(session_id: str, field_id: str, row_index: int, body: CellIn):
    session = _session(session_id)
    rows = session.update_cell(field_id, row_index, body.columnId, body.value)
    session.refresh()
    return {"status": "ok", "rows": rows}


@router.delete("/sessions/{session_id}/tables/{field_id}/rows/{row_index}")
async def delete_row(session_id: str, field_id: str, row_index: int):
    session = _session(session_id)
    rows = session.delete_row(field_id, row_index)
    session.refresh()
    return {"status": "ok", "rows": rows}


@router.get("/sessions/{session_id}/tables/{field_id}/rows/{row_index}/columns")
async def visible_columns(session_id: str, field_id: str, row_index: int):
    return _session(session_id).visible_columns(field_id, row_index)


@router.post("/sessions/{session_id}/submit")
async def submit(session_id: str):
    session = _session(session_id)
    result = session.submit()
    out = SubmissionOut(
        formId=session.form.id,
        accepted=result.accepted,
        errors=result.errors,
        values=result.payload,
        submittedAt=result.submittedAt,
    )
    if not result.accepted:
        return JSONResponse(status_code=422, content=out.model_dump(mode="json"))
    return out


@router.get("/sessions/{session_id}/export", response_class=PlainTextResponse)
async def export_values(session_id: str):
    """Pretty-printed JSON of the current values, for copy/export."""
    session = _session(session_id)
    return json.dumps(session.values, indent=2, default=str)
