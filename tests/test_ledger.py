import json

import pytest

from src.api.errors import StoreNotFound, StoreUnavailable
from src.api.services.ledger import FAILED, FINALIZED, PENDING, AttemptLedger
from src.api.services.table_store import JsonTableStore, shared_table_store


@pytest.fixture()
def store(tmp_path):
    return JsonTableStore(tmp_path / "attempts.json")


@pytest.fixture()
def ledger(store):
    return AttemptLedger(store)


def test_ensure_pending_is_idempotent(ledger, store):
    assert ledger.ensure_pending("a1", {"category": "onpitch", "target_text": "Man on"}) is False
    first = store.find_by_key("a1")
    assert ledger.ensure_pending("a1", {"category": "onpitch", "target_text": "Man on"}) is True

    rows = store.rows()
    assert len(rows) == 1
    assert rows[0]["status"] == PENDING
    assert rows[0]["created_at"] == first["created_at"]


def test_finalize_updates_same_row(ledger, store):
    ledger.ensure_pending("a1", {"category": "interview"})
    record = ledger.finalize("a1", {"score": 80, "transcript": "I train. I play.", "audio_url": "u"})

    assert record.status == FINALIZED
    assert record.score == 80
    assert record.finalized_at
    assert record.category == "interview"
    assert len(store.rows()) == 1


def test_fail_records_step(ledger):
    ledger.ensure_pending("a1")
    record = ledger.fail("a1", "upload timed out", step="upload")
    assert record.status == FAILED
    assert record.error_message == "upload timed out"
    assert record.error_step == "upload"


def test_retry_after_failure_clears_error(ledger, store):
    ledger.ensure_pending("a1")
    ledger.fail("a1", "boom", step="transcribe")
    assert ledger.ensure_pending("a1") is True
    pending = ledger.get("a1")
    assert pending.status == PENDING
    assert pending.error_message is None
    assert pending.error_step is None
    assert pending.finalized_at is None
    record = ledger.finalize("a1", {"score": 55})

    assert record.status == FINALIZED
    assert record.error_message is None
    assert record.error_step is None
    assert len(store.rows()) == 1


def test_transition_unknown_attempt_writes_nothing(ledger, store):
    with pytest.raises(StoreNotFound):
        ledger.finalize("missing", {"score": 10})
    with pytest.raises(StoreNotFound):
        ledger.fail("missing", "nope")
    assert store.rows() == []


def test_transition_from_terminal_state_warns(ledger, caplog):
    ledger.ensure_pending("a1")
    ledger.finalize("a1", {"score": 90})
    with caplog.at_level("WARNING", logger="pitchside.api.ledger"):
        record = ledger.fail("a1", "late failure", step="store")
    assert record.status == FAILED
    assert "from finalized" in caplog.text


def test_review_merges_coach_columns(ledger):
    ledger.ensure_pending("a1")
    ledger.finalize("a1", {"score": 70})
    record = ledger.review("a1", coach_score="B+", coach_feedback="Speak up", ai_score=75)

    assert record.coach_score == "B+"
    assert record.coach_feedback == "Speak up"
    assert record.score == 75
    assert record.status == FINALIZED


def test_review_unknown_attempt(ledger):
    with pytest.raises(StoreNotFound):
        ledger.review("missing", coach_feedback="x")


def test_get_and_find(ledger):
    assert ledger.find("a1") is None
    with pytest.raises(StoreNotFound) as excinfo:
        ledger.get("a1")
    assert excinfo.value.status_code == 404
    ledger.ensure_pending("a1", {"player_id": "p7"})
    assert ledger.get("a1").player_id == "p7"


def test_store_corruption_is_unavailable(tmp_path):
    path = tmp_path / "attempts.json"
    path.write_text("{not json", encoding="utf-8")
    ledger = AttemptLedger(JsonTableStore(path))
    with pytest.raises(StoreUnavailable):
        ledger.ensure_pending("a1")


def test_table_store_round_trip(tmp_path):
    path = tmp_path / "nested" / "attempts.json"
    store = JsonTableStore(path)
    store.insert({"attempt_id": "a1", "score": 1})
    store.insert({"attempt_id": "a2", "score": 2})

    assert store.update_by_key("a2", {"score": 3, "attempt_id": "ignored"}) is True
    assert store.update_by_key("a3", {"score": 4}) is False

    data = json.loads(path.read_text(encoding="utf-8"))
    assert [row["attempt_id"] for row in data] == ["a1", "a2"]
    assert data[1]["score"] == 3


def test_table_store_requires_key(tmp_path):
    store = JsonTableStore(tmp_path / "attempts.json")
    with pytest.raises(ValueError):
        store.insert({"score": 1})


def test_table_store_returns_copies(tmp_path):
    store = JsonTableStore(tmp_path / "attempts.json")
    store.insert({"attempt_id": "a1", "score": 1})
    row = store.find_by_key("a1")
    row["score"] = 99
    assert store.find_by_key("a1")["score"] == 1


def test_table_store_empty_file(tmp_path):
    path = tmp_path / "attempts.json"
    path.write_text("", encoding="utf-8")
    assert JsonTableStore(path).rows() == []


def test_shared_table_store_is_one_per_path(tmp_path):
    path = tmp_path / "attempts.json"
    first = shared_table_store(path)
    assert shared_table_store(str(path)) is first
    assert shared_table_store(tmp_path / "." / "attempts.json") is first
    assert shared_table_store(tmp_path / "other.json") is not first


def test_table_store_leaves_no_tmp_file(tmp_path):
    store = JsonTableStore(tmp_path / "attempts.json")
    store.insert({"attempt_id": "a1"})
    assert [p.name for p in tmp_path.iterdir()] == ["attempts.json"]
