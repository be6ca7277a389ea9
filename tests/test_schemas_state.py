import pytest
from pydantic import ValidationError as PydanticValidationError

from core.errors import IllegalTransitionError
from schemas.state import (
    StateDocument,
    StepKind,
    StepRecord,
    StepStatus,
    StepSubtype,
    can_transition,
    utc_timestamp,
)


def _record(**overrides) -> StepRecord:
    data = dict(id="brew-install-git", description="Install git", kind="automated", subtype="brew")
    data.update(overrides)
    return StepRecord(**data)


def test_lifecycle_transitions():
    record = _record()
    assert record.status is StepStatus.PENDING

    done = record.completed("2025-11-24T12:00:00Z", params={"package": "git"})
    assert done.status is StepStatus.COMPLETE
    assert done.completed_at == "2025-11-24T12:00:00Z"
    assert done.params == {"package": "git"}
    assert record.status is StepStatus.PENDING

    undone = done.undone("2025-11-24T13:00:00Z")
    assert undone.status is StepStatus.REVERSIBLE_PENDING
    assert undone.undone_at == "2025-11-24T13:00:00Z"
    assert undone.completed_at == "2025-11-24T12:00:00Z"

    again = undone.completed("2025-11-24T14:00:00Z")
    assert again.status is StepStatus.COMPLETE
    assert again.undone_at is None


def test_illegal_transitions_are_rejected():
    with pytest.raises(IllegalTransitionError):
        _record().undone("2025-11-24T12:00:00Z")

    done = _record().completed("2025-11-24T12:00:00Z")
    with pytest.raises(IllegalTransitionError):
        done.completed("2025-11-24T12:01:00Z")

    assert not can_transition(StepStatus.PENDING, StepStatus.REVERSIBLE_PENDING)
    assert can_transition(StepStatus.REVERSIBLE_PENDING, StepStatus.COMPLETE)


def test_only_three_subtypes_are_reversible():
    assert StepSubtype.BREW.reversible
    assert StepSubtype.BREW_CASK.reversible
    assert StepSubtype.MAC_DEFAULTS.reversible
    assert not StepSubtype.OTHER.reversible


def test_document_serializes_camel_case_and_skips_missing_timestamps():
    done = _record().completed("2025-11-24T12:00:00Z")
    doc = StateDocument().with_record(done).with_record(_record(id="brew-jq"))

    data = doc.to_json_dict()

    assert data["version"] == "1.0.0"
    assert data["steps"]["brew-install-git"]["completedAt"] == "2025-11-24T12:00:00Z"
    assert data["steps"]["brew-install-git"]["status"] == "complete"
    assert "completedAt" not in data["steps"]["brew-jq"]
    assert "undoneAt" not in data["steps"]["brew-jq"]


def test_document_requires_ids_to_match_keys():
    with pytest.raises(PydanticValidationError):
        StateDocument.model_validate(
            {"version": "1.0.0", "steps": {"a": {"id": "b", "kind": "manual", "subtype": "other"}}}
        )


def test_legacy_records_are_normalized():
    doc = StateDocument.model_validate(
        {
            "version": "1.0.0",
            "steps": {
                "install-git": {
                    "id": "install-git",
                    "description": "Install git",
                    "kind": "automated",
                    "subtype": "brew",
                    "status": "undone",
                    "completed_at": "2025-11-24T12:00:00Z",
                    "undone_at": "2025-11-25T12:00:00Z",
                },
                "arc-login": {
                    "id": "arc-login",
                    "description": "Arc browser login",
                    "kind": "manual",
                    "status": "complete",
                    "completed_at": "2025-11-24T23:45:00Z",
                },
                "install-jq": {
                    "id": "install-jq",
                    "description": "Install jq",
                    "kind": "automated",
                    "subtype": "brew",
                    "status": "pending",
                    "timestamp": "",
                },
                "install-chrome": {
                    "id": "install-chrome",
                    "kind": "automated",
                    "subtype": "brew-cask",
                    "status": "complete",
                    "timestamp": "2025-11-24T12:00:00Z",
                },
            },
        }
    )

    assert doc.steps["install-git"].status is StepStatus.REVERSIBLE_PENDING
    assert doc.steps["install-git"].undone_at == "2025-11-25T12:00:00Z"
    assert doc.steps["arc-login"].subtype is StepSubtype.OTHER
    assert doc.steps["arc-login"].kind is StepKind.MANUAL
    assert doc.steps["install-jq"].completed_at is None
    assert doc.steps["install-chrome"].completed_at == "2025-11-24T12:00:00Z"


def test_utc_timestamp_format():
    stamp = utc_timestamp()

    assert len(stamp) == len("2025-11-24T12:00:00Z")
    assert stamp.endswith("Z")
    assert stamp[10] == "T"
