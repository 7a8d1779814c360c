"""Process-local registries of forms and preview sessions. Nothing is persisted."""

from datetime import datetime
from typing import Dict, List

from formflow.builder import FormBuilder
from formflow.errors import FormLockedError, NodeNotFoundError
from formflow.schemas import Form, FormSummary
from formflow.session import PreviewSession
from formflow.transport import HttpxTransport, Transport


class FormStore:
    def __init__(self):
        self._builders: Dict[str, FormBuilder] = {}
        self._created: Dict[str, datetime] = {}

    def upsert(self, form: Form) -> FormBuilder:
        existing = self._builders.get(form.id)
        if existing is not None and existing.is_published:
            raise FormLockedError(f"Form {form.id} is published; unpublish it to edit")
        builder = FormBuilder.from_form(form)
        # preserve createdAt of an existing form
        self._created.setdefault(builder.form_id, datetime.utcnow())
        self._builders[builder.form_id] = builder
        return builder

    def get(self, form_id: str) -> FormBuilder:
        try:
            return self._builders[form_id]
        except KeyError:
            raise NodeNotFoundError(form_id)

    def list(self) -> List[FormSummary]:
        return [
            FormSummary(id=b.form_id, name=b.name, version=b.version, createdAt=self._created[b.form_id])
            for b in self._builders.values()
        ]

    def delete(self, form_id: str) -> None:
        self.get(form_id)
        del self._builders[form_id]
        del self._created[form_id]

    def clear(self) -> None:
        self._builders.clear()
        self._created.clear()


class SessionStore:
    def __init__(self):
        self._sessions: Dict[str, PreviewSession] = {}

    def create(self, form: Form, transport: Transport) -> PreviewSession:
        session = PreviewSession(form, transport)
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> PreviewSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise NodeNotFoundError(session_id)

    def delete(self, session_id: str) -> None:
        self.get(session_id)
        del self._sessions[session_id]

    def delete_for_form(self, form_id: str) -> int:
        doomed = [sid for sid, s in self._sessions.items() if s.form.id == form_id]
        for sid in doomed:
            del self._sessions[sid]
        return len(doomed)

    def clear(self) -> None:
        self._sessions.clear()


forms_store = FormStore()
sessions_store = SessionStore()


def get_transport() -> Transport:
    """FastAPI dependency; tests override it with an in-memory transport."""
    return HttpxTransport()
