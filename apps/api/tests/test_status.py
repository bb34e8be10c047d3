import pytest

from app.core.errors import InvalidTransition
from app.modules.workflow.status import (
    LEGACY_ALIASES,
    TRANSITIONS,
    ProjectStatus,
    WorkflowEvent,
    can_apply,
    next_status,
    normalize_status,
)

S = ProjectStatus
E = WorkflowEvent


def test_status_spellings_are_stable() -> None:
    assert {s.value for s in ProjectStatus} == {
        "draft",
        "awaiting_customer_input",
        "character_review",
        "character_generation",
        "character_generation_complete",
        "character_generation_failed",
        "character_revision_needed",
        "characters_approved",
        "characters_regenerated",
        "sketches_review",
        "sketches_revision",
        "illustration_approved",
        "completed",
    }


@pytest.mark.parametrize("legacy", sorted(LEGACY_ALIASES))
def test_legacy_aliases_normalize_to_canonical(legacy: str) -> None:
    assert normalize_status(legacy) is LEGACY_ALIASES[legacy]
    assert normalize_status(legacy.upper()) is LEGACY_ALIASES[legacy]


def test_unknown_status_rejected() -> None:
    with pytest.raises(ValueError):
        normalize_status("cancelled")


def test_batch_outcomes_are_exclusive() -> None:
    assert next_status(S.CHARACTER_GENERATION, E.BATCH_SUCCEEDED) is S.CHARACTER_GENERATION_COMPLETE
    assert next_status(S.CHARACTER_GENERATION, E.BATCH_FAILED) is S.CHARACTER_GENERATION_FAILED
    # once settled, a second outcome cannot land on top
    assert can_apply(S.CHARACTER_GENERATION_COMPLETE, E.BATCH_FAILED) is None
    assert can_apply(S.CHARACTER_GENERATION_FAILED, E.BATCH_SUCCEEDED) is None


def test_failed_is_parked_not_terminal() -> None:
    assert next_status(S.CHARACTER_GENERATION_FAILED, E.RETRY_GENERATION) is S.CHARACTER_GENERATION
    assert next_status(S.CHARACTER_GENERATION_FAILED, E.ADMIN_APPROVE_CHARACTERS) is S.CHARACTERS_APPROVED


def test_customer_cannot_approve_from_failed() -> None:
    with pytest.raises(InvalidTransition) as ei:
        next_status(S.CHARACTER_GENERATION_FAILED, E.APPROVE_CHARACTERS)
    assert ei.value.status_code == 409
    assert ei.value.details == {"status": "character_generation_failed", "event": "approve_characters"}


def test_sketch_cycle() -> None:
    assert next_status(S.CHARACTERS_APPROVED, E.SEND_SKETCHES) is S.SKETCHES_REVIEW
    assert next_status(S.SKETCHES_REVIEW, E.REQUEST_SKETCH_REVISION) is S.SKETCHES_REVISION
    assert next_status(S.SKETCHES_REVISION, E.SEND_SKETCHES) is S.SKETCHES_REVIEW
    assert next_status(S.SKETCHES_REVIEW, E.APPROVE_SKETCHES) is S.ILLUSTRATION_APPROVED
    assert next_status(S.ILLUSTRATION_APPROVED, E.COMPLETE) is S.COMPLETED


def test_completed_accepts_nothing() -> None:
    assert not [k for k in TRANSITIONS if k[0] is S.COMPLETED]


def test_failures_cleared_completes_a_failed_pass() -> None:
    assert next_status(S.CHARACTER_GENERATION_FAILED, E.FAILURES_CLEARED) is S.CHARACTER_GENERATION_COMPLETE
    assert can_apply(S.CHARACTER_REVIEW, E.FAILURES_CLEARED) is None
