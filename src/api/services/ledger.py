"""Idempotent attempt ledger on top of a keyed table store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..errors import StoreNotFound
from ..schemas import AttemptRecord
from .table_store import TableStore

LOGGER = logging.getLogger("pitchside.api.ledger")

PENDING = "pending"
FINALIZED = "finalized"
FAILED = "failed"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AttemptLedger:
    """Moves attempt rows from ``pending`` to ``finalized`` or ``failed``.

    The ``attempt_id`` is the idempotency key. Writes for the same id always
    land on the same row; concurrent writers for one id are not serialized here
    and the last write wins.
    """

    def __init__(self, store: TableStore) -> None:
        self.store = store

    def ensure_pending(self, attempt_id: str, minimal_fields: Optional[Dict[str, Any]] = None) -> bool:
        """Create or re-mark the row as pending. Returns True if it already existed."""

        fields = {k: v for k, v in (minimal_fields or {}).items() if k not in {"attempt_id", "status"}}
        existing = self.store.find_by_key(attempt_id)
        if existing is not None:
            fields.pop("created_at", None)
            fields.update({"status": PENDING, "finalized_at": None, "error_message": None, "error_step": None})
            self.store.update_by_key(attempt_id, fields)
            LOGGER.info("Attempt %s re-entered as pending (was %s)", attempt_id, existing.get("status"))
            return True
        row = {"attempt_id": attempt_id, "status": PENDING, "created_at": _utc_now()}
        row.update(fields)
        self.store.insert(row)
        LOGGER.info("Attempt %s recorded as pending", attempt_id)
        return False

    def finalize(self, attempt_id: str, fields: Dict[str, Any]) -> AttemptRecord:
        updates = dict(fields)
        updates.update(
            {
                "status": FINALIZED,
                "finalized_at": _utc_now(),
                "error_message": None,
                "error_step": None,
            }
        )
        return self._transition(attempt_id, updates)

    def fail(self, attempt_id: str, error_message: str, *, step: str = "unknown") -> AttemptRecord:
        updates = {
            "status": FAILED,
            "finalized_at": _utc_now(),
            "error_message": error_message,
            "error_step": step,
        }
        return self._transition(attempt_id, updates)

    def review(
        self,
        attempt_id: str,
        *,
        coach_score: Optional[str] = None,
        coach_feedback: Optional[str] = None,
        ai_score: Optional[int] = None,
    ) -> AttemptRecord:
        """Merge coach review columns; the row's status is left untouched."""

        updates: Dict[str, Any] = {}
        if coach_score is not None:
            updates["coach_score"] = coach_score
        if coach_feedback is not None:
            updates["coach_feedback"] = coach_feedback
        if ai_score is not None:
            updates["score"] = ai_score
        if not self.store.update_by_key(attempt_id, updates):
            raise StoreNotFound(attempt_id)
        return self.get(attempt_id)

    def find(self, attempt_id: str) -> Optional[AttemptRecord]:
        row = self.store.find_by_key(attempt_id)
        return AttemptRecord.model_validate(row) if row is not None else None

    def get(self, attempt_id: str) -> AttemptRecord:
        record = self.find(attempt_id)
        if record is None:
            raise StoreNotFound(attempt_id)
        return record

    def _transition(self, attempt_id: str, updates: Dict[str, Any]) -> AttemptRecord:
        current = self.store.find_by_key(attempt_id)
        if current is None:
            raise StoreNotFound(attempt_id)
        if current.get("status") != PENDING:
            LOGGER.warning(
                "Attempt %s moved to %s from %s", attempt_id, updates["status"], current.get("status")
            )
        if not self.store.update_by_key(attempt_id, updates):
            raise StoreNotFound(attempt_id)
        current.update(updates)
        return AttemptRecord.model_validate(current)


__all__ = ["AttemptLedger", "FAILED", "FINALIZED", "PENDING"]
