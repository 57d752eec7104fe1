import pytest

from src.api.errors import StoreUnavailable, TranscriptionError, UploadError
from src.api.services.attempt_pipeline import AttemptPipeline, AttemptSubmission, SubmissionContext
from src.api.services.ledger import FAILED, FINALIZED, AttemptLedger
from src.api.services.storage import LocalObjectStorage
from src.api.services.table_store import JsonTableStore


class FakeStorage:
    name = "fake"

    def __init__(self, fail_times=0):
        self.fail_times = fail_times
        self.paths = []

    async def upload(self, path, data, content_type):
        self.paths.append(path)
        if self.fail_times:
            self.fail_times -= 1
            raise UploadError("bucket offline")
        return f"https://cdn.test/{path}"


class FakeTranscriber:
    name = "fake"

    def __init__(self, text="man on", error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def transcribe(self, audio, language_hint, *, filename="recording.flac", content_type="audio/flac"):
        self.calls.append(language_hint)
        if self.error is not None:
            raise self.error
        return self.text


class CountingLedger(AttemptLedger):
    def __init__(self, store):
        super().__init__(store)
        self.terminal_calls = []

    def finalize(self, attempt_id, fields):
        self.terminal_calls.append(("finalize", attempt_id))
        return super().finalize(attempt_id, fields)

    def fail(self, attempt_id, error_message, *, step="unknown"):
        self.terminal_calls.append(("fail", attempt_id))
        return super().fail(attempt_id, error_message, step=step)


@pytest.fixture()
def store(tmp_path):
    return JsonTableStore(tmp_path / "attempts.json")


@pytest.fixture()
def ledger(store):
    return CountingLedger(store)


def _submission(attempt_id="att-1", **kwargs):
    values = {
        "attempt_id": attempt_id,
        "audio": b"fLaC-bytes",
        "category": "onpitch",
        "target_text": "Man on!",
        "item_id": "item-3",
        "expected_phrases": ["man on"],
        "time_to_first_response_ms": 900,
        "duration_sec": 1.4,
    }
    values.update(kwargs)
    return AttemptSubmission(**values)


CONTEXT = SubmissionContext(player_id="p1", player_name="Sam", session_id="s1")


@pytest.mark.asyncio
async def test_successful_attempt_is_finalized(ledger, store):
    storage = FakeStorage()
    pipeline = AttemptPipeline(ledger, storage, FakeTranscriber("Man on, man on"))

    outcome = await pipeline.process(_submission(), CONTEXT)

    assert outcome.result.score == 100
    assert outcome.audio_url == "https://cdn.test/p1/att-1.flac"
    assert outcome.record.status == FINALIZED
    assert outcome.record.latency_ms == 900
    assert outcome.record.player_name == "Sam"
    assert ledger.terminal_calls == [("finalize", "att-1")]
    assert len(store.rows()) == 1


@pytest.mark.asyncio
async def test_upload_failure_marks_failed_and_skips_transcription(ledger, store):
    transcriber = FakeTranscriber()
    pipeline = AttemptPipeline(ledger, FakeStorage(fail_times=1), transcriber)

    with pytest.raises(UploadError):
        await pipeline.process(_submission(), CONTEXT)

    row = store.find_by_key("att-1")
    assert row["status"] == FAILED
    assert row["error_step"] == "upload"
    assert transcriber.calls == []
    assert ledger.terminal_calls == [("fail", "att-1")]


@pytest.mark.asyncio
async def test_transcription_failure_marks_failed(ledger, store):
    pipeline = AttemptPipeline(
        ledger, FakeStorage(), FakeTranscriber(error=TranscriptionError("model crashed"))
    )

    with pytest.raises(TranscriptionError) as excinfo:
        await pipeline.process(_submission(), CONTEXT)

    assert excinfo.value.step == "transcribe"
    row = store.find_by_key("att-1")
    assert row["status"] == FAILED
    assert row["error_message"] == "model crashed"
    assert ledger.terminal_calls == [("fail", "att-1")]


@pytest.mark.asyncio
async def test_retry_reuses_row_after_failure(ledger, store):
    storage = FakeStorage(fail_times=1)
    pipeline = AttemptPipeline(ledger, storage, FakeTranscriber("man on"))

    with pytest.raises(UploadError):
        await pipeline.process(_submission(), CONTEXT)
    outcome = await pipeline.process(_submission(), CONTEXT)

    assert outcome.record.status == FINALIZED
    assert outcome.record.error_step is None
    assert storage.paths == ["p1/att-1.flac", "p1/att-1.flac"]
    assert len(store.rows()) == 1


@pytest.mark.asyncio
async def test_finalized_attempt_is_replayed(ledger, store):
    storage = FakeStorage()
    transcriber = FakeTranscriber("man on")
    pipeline = AttemptPipeline(ledger, storage, transcriber)

    first = await pipeline.process(_submission(), CONTEXT)
    second = await pipeline.process(_submission(), CONTEXT)

    assert second.result.score == first.result.score
    assert second.audio_url == first.audio_url
    assert second.transcript == "man on"
    assert len(storage.paths) == 1
    assert len(transcriber.calls) == 1
    assert len(store.rows()) == 1


@pytest.mark.asyncio
async def test_store_unavailable_before_work(tmp_path):
    path = tmp_path / "attempts.json"
    path.write_text("[broken", encoding="utf-8")
    storage = FakeStorage()
    pipeline = AttemptPipeline(AttemptLedger(JsonTableStore(path)), storage, FakeTranscriber())

    with pytest.raises(StoreUnavailable):
        await pipeline.process(_submission(), CONTEXT)
    assert storage.paths == []


@pytest.mark.asyncio
async def test_language_defaults_and_overrides(ledger):
    transcriber = FakeTranscriber()
    pipeline = AttemptPipeline(ledger, FakeStorage(), transcriber, default_language="en")

    await pipeline.process(_submission("a"), CONTEXT)
    await pipeline.process(_submission("b", language="pt"), CONTEXT)

    assert transcriber.calls == ["en", "pt"]


@pytest.mark.asyncio
async def test_structural_attempt_stores_sentence_stats(ledger, tmp_path):
    storage = LocalObjectStorage(tmp_path / "audio", "https://files.test")
    transcript = "I played midfield. We won two nil. The coach was happy."
    pipeline = AttemptPipeline(ledger, storage, FakeTranscriber(transcript))

    outcome = await pipeline.process(
        _submission(category="interview", target_text="", duration_sec=15.0), SubmissionContext()
    )

    assert outcome.record.sentence_count == 3
    assert outcome.record.structure_score == 100
    assert outcome.result.score == 80
    assert outcome.audio_url == "https://files.test/anon/att-1.flac"
    assert (tmp_path / "audio" / "anon" / "att-1.flac").read_bytes() == b"fLaC-bytes"


class CrashingStorage:
    name = "crashing"

    async def upload(self, path, data, content_type):
        raise RuntimeError("socket closed")


@pytest.mark.asyncio
async def test_unexpected_storage_error_marks_failed(ledger, store):
    transcriber = FakeTranscriber()
    pipeline = AttemptPipeline(ledger, CrashingStorage(), transcriber)

    with pytest.raises(UploadError) as excinfo:
        await pipeline.process(_submission(), CONTEXT)

    assert excinfo.value.step == "upload"
    row = store.find_by_key("att-1")
    assert row["status"] == FAILED
    assert row["error_step"] == "upload"
    assert "socket closed" in row["error_message"]
    assert transcriber.calls == []
    assert ledger.terminal_calls == [("fail", "att-1")]


@pytest.mark.asyncio
async def test_unexpected_transcriber_error_marks_failed(ledger, store):
    pipeline = AttemptPipeline(ledger, FakeStorage(), FakeTranscriber(error=RuntimeError("cuda lost")))

    with pytest.raises(TranscriptionError):
        await pipeline.process(_submission(), CONTEXT)

    row = store.find_by_key("att-1")
    assert row["status"] == FAILED
    assert row["error_step"] == "transcribe"


@pytest.mark.asyncio
@pytest.mark.parametrize("attempt_id", ["../../../escaped", "a\x00b"])
async def test_unsafe_attempt_id_never_leaves_storage_root(ledger, store, tmp_path, attempt_id):
    storage = LocalObjectStorage(tmp_path / "audio" / "nested")
    pipeline = AttemptPipeline(ledger, storage, FakeTranscriber())

    with pytest.raises(UploadError):
        await pipeline.process(_submission(attempt_id), SubmissionContext())

    assert store.find_by_key(attempt_id)["status"] == FAILED
    assert not (tmp_path / "escaped.flac").exists()
    assert not (tmp_path / "audio" / "escaped.flac").exists()
