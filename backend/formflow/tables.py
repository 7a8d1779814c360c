import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from formflow.interpolation import interpolate, interpolate_url, is_empty
from formflow.options import OptionResolver, make_signature
from formflow.schemas import Column, Option, TableField

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
CellKey = Tuple[str, str, int]


# --- row operations: rows are appended, replaced wholesale or filtered by index ---


def append_row(rows: Optional[Sequence[Row]]) -> List[Row]:
    return [*(rows or []), {}]


def update_cell(rows: Sequence[Row], index: int, column_id: str, value: Any) -> List[Row]:
    if not 0 <= index < len(rows):
        raise IndexError(f"row {index} out of range ({len(rows)} rows)")
    updated = list(rows)
    updated[index] = {**rows[index], column_id: value}
    return updated


def delete_row(rows: Sequence[Row], index: int) -> List[Row]:
    return [row for i, row in enumerate(rows) if i != index]


def cell_key(field_id: str, column_id: str, row_index: int) -> CellKey:
    return (field_id, column_id, row_index)


class TableOptionResolver(OptionResolver):
    """
    Row-scoped option resolution for dropdown columns of table fields.

    Parameters are interpolated against the row's own cells. There is no
    dependsOn gating: a cell whose params contain an empty value is not
    fetched and resolves to no options.
    """

    def refresh_table(self, table: TableField, rows: Optional[Sequence[Row]]) -> List[asyncio.Task]:
        tasks = []
        for row_index, row in enumerate(rows or []):
            for column in table.columns:
                task = self.refresh_cell(table.id, column, row_index, row)
                if task is not None:
                    tasks.append(task)
        return tasks

    def refresh_cell(self, field_id: str, column: Column, row_index: int, row: Mapping[str, Any]) -> Optional[asyncio.Task]:
        api = column.apiConfig
        if api is None or column.type != "dropdown":
            return None

        key = cell_key(field_id, column.id, row_index)
        real_params = interpolate(api.params, row)
        if any(is_empty(v) for v in real_params.values()):
            self.cache.clear(key)
            return None

        url = interpolate_url(api.url, row)
        signature = make_signature(real_params, url=url)
        if self.cache.signature(key) == signature:
            return None

        return self._schedule(key, signature, api, url, real_params)

    def options_for(self, field_id: str, column_id: str, row_index: int) -> List[Option]:
        return self.cache.options(cell_key(field_id, column_id, row_index))

    def is_loading(self, field_id: str, column_id: str, row_index: int) -> bool:
        return self.cache.is_loading(cell_key(field_id, column_id, row_index))

    def _table_keys(self, field_id: str) -> List[CellKey]:
        return [k for k in self.cache.keys() if isinstance(k, tuple) and k[0] == field_id]

    def forget_row(self, field_id: str, index: int) -> None:
        """Follow a delete: drop the row's entries and shift later rows down."""
        keys = self._table_keys(field_id)
        for key in keys:
            if key[2] == index:
                self.cache.pop(key)
        for key in sorted((k for k in keys if k[2] > index), key=lambda k: k[2]):
            self.cache.move(key, cell_key(key[0], key[1], key[2] - 1))

    def prune_rows(self, field_id: str, row_count: int) -> None:
        for key in self._table_keys(field_id):
            if key[2] >= row_count:
                self.cache.pop(key)

    def snapshot_table(self, field_id: str) -> Dict[str, Dict[int, List[Dict[str, Any]]]]:
        """columnId -> rowIndex -> options, for one table."""
        out: Dict[str, Dict[int, List[Dict[str, Any]]]] = {}
        for key in self._table_keys(field_id):
            out.setdefault(key[1], {})[key[2]] = [o.model_dump() for o in self.cache.options(key)]
        return out
