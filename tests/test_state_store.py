from __future__ import annotations

import os

import orjson
import pytest

from core.errors import CorruptionError, StorageError, ValidationError
from schemas.state import StateDocument, StepRecord
from store.state_store import StateStore


def _record(step_id: str = "brew-install-git") -> StepRecord:
    return StepRecord(id=step_id, description="Install git", kind="automated", subtype="brew")


def test_initialize_creates_empty_document_and_is_idempotent(store, state_path):
    store.initialize()
    first = state_path.read_bytes()
    store.initialize()

    assert state_path.read_bytes() == first
    assert orjson.loads(first) == {"version": "1.0.0", "steps": {}}


def test_read_initializes_missing_document(store, state_path):
    doc = store.read()

    assert doc.steps == {}
    assert state_path.exists()


def test_write_then_read_round_trip_keeps_layout(store, state_path):
    doc = StateDocument().with_record(_record().completed("2025-11-24T12:00:00Z", params={"package": "git"}))
    store.write(doc)

    raw = orjson.loads(state_path.read_bytes())
    assert raw["steps"]["brew-install-git"]["completedAt"] == "2025-11-24T12:00:00Z"
    assert store.read().steps["brew-install-git"].params == {"package": "git"}


def test_corrupt_json_is_reported_not_repaired(store, state_path):
    state_path.parent.mkdir(parents=True)
    state_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(CorruptionError):
        store.read()
    assert state_path.read_text(encoding="utf-8") == "{not json"


def test_schema_violation_is_corruption(store, state_path):
    state_path.parent.mkdir(parents=True)
    state_path.write_bytes(
        orjson.dumps({"version": "1.0.0", "steps": {"x": {"id": "x", "kind": "bogus", "subtype": "brew"}}})
    )

    with pytest.raises(CorruptionError):
        store.read()


def test_invalid_document_is_not_written(store, state_path):
    store.write(StateDocument().with_record(_record()))
    before = state_path.read_bytes()

    bad = StateDocument.model_construct(version="1.0.0", steps={"brew-install-git": _record("other-id")})
    with pytest.raises(ValidationError):
        store.write(bad)

    assert state_path.read_bytes() == before


def test_interrupted_write_leaves_previous_document(store, state_path, monkeypatch):
    store.write(StateDocument().with_record(_record()))
    before = state_path.read_bytes()

    def fail_replace(src, dst):
        raise OSError("simulated crash before rename")

    monkeypatch.setattr("store.state_store.os.replace", fail_replace)

    with pytest.raises(StorageError):
        store.write(StateDocument().with_record(_record("brew-jq")))

    assert state_path.read_bytes() == before
    assert sorted(os.listdir(state_path.parent)) == ["state.json"]


def test_unwritable_location_is_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    store = StateStore(blocker / "state.json")

    with pytest.raises(StorageError):
        store.initialize()


def test_directory_at_state_path_is_storage_error(tmp_path):
    target = tmp_path / "state.json"
    target.mkdir()

    with pytest.raises(StorageError):
        StateStore(target).initialize()
