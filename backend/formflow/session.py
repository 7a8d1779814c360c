import asyncio
import itertools
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from formflow.errors import ConfigurationError, NodeNotFoundError
from formflow.options import OptionResolver, autofill
from formflow.schemas import Form, Option, TableField
from formflow.submission import SubmissionResult, assemble, collect_visible
from formflow.tables import TableOptionResolver, append_row, delete_row, update_cell
from formflow.transport import Transport
from formflow.visibility import is_cell_visible

logger = logging.getLogger(__name__)


class PreviewSession:
    """
    One fill-in session against a published form.

    Holds the value environment and the option caches. The environment starts
    empty and is thrown away with the session.
    """

    def __init__(self, form: Form, transport: Transport, session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex
        self.form = form
        self.transport = transport
        self.createdAt = datetime.utcnow()
        self._fields_by_id = {f.id: f for f in form.iter_fields()}
        self._autofill_counter = itertools.count(1)
        self.reset()

    def reset(self) -> None:
        self.values: Dict[str, Any] = {}
        # orphans any autofill still in flight
        self._autofill_generation: Dict[str, int] = {}
        self.options = OptionResolver(self.transport)
        self.table_options = TableOptionResolver(self.transport)

    def field(self, field_id: str) -> Any:
        try:
            return self._fields_by_id[field_id]
        except KeyError:
            raise NodeNotFoundError(field_id)

    def _table(self, field_id: str) -> TableField:
        f = self.field(field_id)
        if f.type != "table":
            raise ConfigurationError(f"Field {field_id!r} is not a table")
        return f

    # --- values ---

    def _checked(self, field_id: str, value: Any) -> Any:
        f = self.field(field_id)
        if f.type == "table" and value is not None and not isinstance(value, list):
            raise ConfigurationError(f"Table {field_id!r} expects a list of rows")
        return f

    def set_value(self, field_id: str, value: Any) -> None:
        if self._checked(field_id, value).type == "table":
            self.table_options.prune_rows(field_id, len(value or []))
        self.values[field_id] = value

    def set_values(self, values: Mapping[str, Any]) -> None:
        """Apply several values at once; nothing is written if any of them is rejected."""
        for field_id, value in values.items():
            self._checked(field_id, value)
        for field_id, value in values.items():
            self.set_value(field_id, value)

    async def commit(self, field_id: str, value: Any) -> Dict[str, Any]:
        """
        Commit a text/date value (the blur of an input) and run its autofill.

        Returns the updates applied to other fields. A commit superseded by a
        newer one on the same field applies nothing.
        """
        f = self.field(field_id)
        self.set_value(field_id, value)
        generation = next(self._autofill_counter)
        self._autofill_generation[field_id] = generation

        updates = await autofill(self.transport, f, value, self.values, self._fields_by_id)
        if self._autofill_generation.get(field_id) != generation:
            logger.debug("Discarding superseded autofill for %s", field_id)
            return {}
        self.values.update(updates)
        return updates

    # --- rows ---

    def _rows(self, field_id: str) -> List[Dict[str, Any]]:
        self._table(field_id)
        return list(self.values.get(field_id) or [])

    def append_row(self, field_id: str) -> List[Dict[str, Any]]:
        rows = append_row(self._rows(field_id))
        self.values[field_id] = rows
        return rows

    def update_cell(self, field_id: str, row_index: int, column_id: str, value: Any) -> List[Dict[str, Any]]:
        table = self._table(field_id)
        if table.column(column_id) is None:
            raise NodeNotFoundError(column_id)
        rows = update_cell(self._rows(field_id), row_index, column_id, value)
        self.values[field_id] = rows
        return rows

    def delete_row(self, field_id: str, row_index: int) -> List[Dict[str, Any]]:
        rows = self._rows(field_id)
        if not 0 <= row_index < len(rows):
            raise IndexError(f"row {row_index} out of range ({len(rows)} rows)")
        rows = delete_row(rows, row_index)
        self.values[field_id] = rows
        self.table_options.forget_row(field_id, row_index)
        return rows

    # --- evaluation ---

    def refresh(self) -> List[asyncio.Task]:
        """Schedule every option fetch the current values call for."""
        fields = list(self.form.iter_fields())
        tasks = self.options.refresh(fields, self.values)
        for f in fields:
            if f.type == "table":
                tasks.extend(self.table_options.refresh_table(f, self.values.get(f.id)))
        return tasks

    async def drain(self) -> None:
        await self.options.drain()
        await self.table_options.drain()

    def visible_fields(self) -> List[Any]:
        return collect_visible(self.form, self.values)

    def visible_columns(self, field_id: str, row_index: int) -> List[str]:
        table = self._table(field_id)
        rows = self._rows(field_id)
        row = rows[row_index] if 0 <= row_index < len(rows) else {}
        return [c.id for c in table.columns if is_cell_visible(c, row)]

    def options_for(self, field_id: str) -> List[Option]:
        f = self.field(field_id)
        if getattr(f, "apiConfig", None) is not None:
            return self.options.cache.options(field_id)
        return list(getattr(f, "options", []))

    def is_loading(self, field_id: str) -> bool:
        return self.options.cache.is_loading(field_id)

    def cell_options(self, field_id: str, column_id: str, row_index: int) -> List[Option]:
        column = self._table(field_id).column(column_id)
        if column is None:
            raise NodeNotFoundError(column_id)
        if column.apiConfig is not None:
            return self.table_options.options_for(field_id, column_id, row_index)
        return list(column.options)

    def option_snapshot(self) -> Dict[str, Any]:
        fields = {}
        loading = {}
        tables = {}
        for f in self.form.iter_fields():
            if f.type == "table":
                tables[f.id] = self.table_options.snapshot_table(f.id)
            elif hasattr(f, "options"):
                fields[f.id] = [o.model_dump() for o in self.options_for(f.id)]
                loading[f.id] = self.is_loading(f.id)
        return {"options": fields, "loading": loading, "tableOptions": tables}

    def submit(self) -> SubmissionResult:
        result = assemble(self.form, self.values)
        if result.accepted:
            logger.info("Session %s submitted form %s", self.id, self.form.id)
        return result
