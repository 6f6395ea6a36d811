from __future__ import annotations

from pathlib import Path

import pytest

from briefing_pipeline.errors import InvalidTransition, JobNotFound, ValidationError
from briefing_pipeline.jobs.models import JobInput, JobStatus, JobUpdate, running
from briefing_pipeline.jobs.store import JobStore


def _store(tmp_path: Path) -> JobStore:
    return JobStore(tmp_path / "_state" / "jobs.db")


def test_create_and_get(tmp_path: Path) -> None:
    store = _store(tmp_path)
    jid = store.create(JobInput.build("  Acme   Corp ", "Data Engineer", True))
    job = store.get(jid)
    assert job.status == JobStatus.QUEUED.value
    assert job.input == JobInput(subject="Acme Corp", role_hint="Data Engineer", wants_audio=True)
    assert job.progress_log == []
    assert job.result == {}
    assert job.error is None
    assert job.created_at == job.updated_at


def test_ids_are_unique(tmp_path: Path) -> None:
    store = _store(tmp_path)
    ids = {store.create(JobInput.build(f"Co {i}")) for i in range(20)}
    assert len(ids) == 20


def test_unknown_id(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(JobNotFound):
        store.get("missing")
    with pytest.raises(JobNotFound):
        store.update("missing", JobUpdate(log=("x",)))


@pytest.mark.parametrize("subject", [None, "", "   "])
def test_subject_required(subject) -> None:
    with pytest.raises(ValidationError):
        JobInput.build(subject)


def test_result_merge_never_drops_keys(tmp_path: Path) -> None:
    store = _store(tmp_path)
    jid = store.create(JobInput.build("Acme"))
    store.update(jid, JobUpdate(status=running("trends"), result={"trends": ["a"], "industry_sector": "X"}))
    store.update(jid, JobUpdate(result={"sections": [], "industry_sector": None}))
    job = store.get(jid)
    assert job.result == {"trends": ["a"], "industry_sector": "X", "sections": []}
    assert job.status == "running:trends"


def test_progress_log_is_append_only(tmp_path: Path) -> None:
    store = _store(tmp_path)
    jid = store.create(JobInput.build("Acme"))
    store.update(jid, JobUpdate(log=("one",)))
    store.update(jid, JobUpdate(log=("two", "three")))
    assert store.get(jid).progress_log == ["one", "two", "three"]


def test_complete_requires_primary_artifact(tmp_path: Path) -> None:
    store = _store(tmp_path)
    jid = store.create(JobInput.build("Acme"))
    with pytest.raises(InvalidTransition):
        store.update(jid, JobUpdate(status=JobStatus.COMPLETE.value))
    assert store.get(jid).status == JobStatus.QUEUED.value


def test_terminal_statuses_are_final(tmp_path: Path) -> None:
    store = _store(tmp_path)
    done = store.create(JobInput.build("Acme"))
    store.update(
        done,
        JobUpdate(status=JobStatus.COMPLETE.value, result={"primary_artifact_location": "briefing/a.md"}),
    )
    with pytest.raises(InvalidTransition):
        store.update(done, JobUpdate(status=JobStatus.FAILED.value))
    with pytest.raises(InvalidTransition):
        store.update(done, JobUpdate(error="late"))
    # the audio branch may still annotate a complete job
    rec = store.update(done, JobUpdate(result={"audio_status": "failed", "audio_error": "boom"}, log=("x",)))
    assert rec.status == JobStatus.COMPLETE.value
    assert rec.result["primary_artifact_location"] == "briefing/a.md"

    failed = store.create(JobInput.build("Beta"))
    store.update(failed, JobUpdate(status=JobStatus.FAILED.value, error="boom"))
    with pytest.raises(InvalidTransition):
        store.update(failed, JobUpdate(status=running("trends")))
    with pytest.raises(InvalidTransition):
        store.update(failed, JobUpdate(result={"primary_text": "x"}))


def test_final_audio_status_is_frozen(tmp_path: Path) -> None:
    store = _store(tmp_path)
    jid = store.create(JobInput.build("Acme", wants_audio=True))
    store.update(
        jid,
        JobUpdate(
            status=JobStatus.COMPLETE.value,
            result={"primary_artifact_location": "briefing/a.md", "audio_status": "processing"},
        ),
    )
    store.update(jid, JobUpdate(result={"audio_status": "failed", "audio_error": "too slow"}))

    with pytest.raises(InvalidTransition):
        store.update(jid, JobUpdate(result={"audio_status": "ready", "audio_artifact_location": "x.mp3"}))
    job = store.get(jid)
    assert job.result["audio_status"] == "failed"
    assert "audio_artifact_location" not in job.result

    # re-stating the same outcome is harmless
    store.update(jid, JobUpdate(result={"audio_status": "failed"}))


def test_list_filters_and_orders(tmp_path: Path) -> None:
    store = _store(tmp_path)
    a = store.create(JobInput.build("A"))
    b = store.create(JobInput.build("B"))
    c = store.create(JobInput.build("C"))
    store.update(b, JobUpdate(status=running("section:company-overview")))
    assert [j.id for j in store.list()] == [c, b, a]
    assert [j.id for j in store.list(status="running:")] == [b]
    assert {j.id for j in store.list(status="queued")} == {a, c}
    assert len(store.list(limit=1)) == 1


def test_records_survive_a_new_store_handle(tmp_path: Path) -> None:
    jid = _store(tmp_path).create(JobInput.build("Acme"))
    assert _store(tmp_path).get(jid).input.subject == "Acme"
