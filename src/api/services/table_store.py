"""Spreadsheet-style row storage keyed by a single column."""

from __future__ import annotations

import json
import os
import threading
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ..errors import StoreUnavailable

Row = Dict[str, Any]


class TableStore(Protocol):
    key: str

    def find_by_key(self, value: str) -> Optional[Row]:
        ...

    def insert(self, row: Row) -> None:
        ...

    def update_by_key(self, value: str, fields: Row) -> bool:
        ...


class JsonTableStore:
    """Rows persisted as a JSON array; updates merge fields into the matching row."""

    def __init__(self, path: Path | str, *, key: str = "attempt_id") -> None:
        self.path = Path(path)
        self.key = key
        self._lock = threading.Lock()

    def find_by_key(self, value: str) -> Optional[Row]:
        with self._lock:
            for row in self._load():
                if row.get(self.key) == value:
                    return dict(row)
        return None

    def insert(self, row: Row) -> None:
        if not row.get(self.key):
            raise ValueError(f"row is missing key column '{self.key}'")
        with self._lock:
            rows = self._load()
            rows.append(dict(row))
            self._persist(rows)

    def update_by_key(self, value: str, fields: Row) -> bool:
        with self._lock:
            rows = self._load()
            for row in rows:
                if row.get(self.key) == value:
                    row.update({k: v for k, v in fields.items() if k != self.key})
                    self._persist(rows)
                    return True
        return False

    def rows(self) -> List[Row]:
        with self._lock:
            return [dict(row) for row in self._load()]

    def _load(self) -> List[Row]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreUnavailable(f"Cannot read {self.path}: {exc}") from exc
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreUnavailable(f"Corrupt table {self.path}: {exc}") from exc
        if not isinstance(data, list):
            raise StoreUnavailable(f"Corrupt table {self.path}: expected a list of rows")
        return [row for row in data if isinstance(row, dict)]

    def _persist(self, rows: List[Row]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(f"{self.path.suffix}.{os.getpid()}.tmp")
            tmp.write_text(json.dumps(rows, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write {self.path}: {exc}") from exc


@lru_cache(maxsize=None)
def _store_for(path: str) -> JsonTableStore:
    return JsonTableStore(path)


def shared_table_store(path: Path | str) -> JsonTableStore:
    """One store (and lock) per table file, shared by every request in the process."""
    return _store_for(str(Path(path).resolve()))


__all__ = ["JsonTableStore", "Row", "TableStore", "shared_table_store"]
