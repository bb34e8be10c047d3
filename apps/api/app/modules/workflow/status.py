"""
Project status state machine.

Status values are persisted and read by external callers: never rename or
repurpose a member, only add new ones. Legacy spellings from older data are
normalized here, once, at the boundary.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from app.core.errors import InvalidTransition


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    AWAITING_CUSTOMER_INPUT = "awaiting_customer_input"

    # character phase
    CHARACTER_REVIEW = "character_review"
    CHARACTER_GENERATION = "character_generation"
    CHARACTER_GENERATION_COMPLETE = "character_generation_complete"
    CHARACTER_GENERATION_FAILED = "character_generation_failed"
    CHARACTER_REVISION_NEEDED = "character_revision_needed"
    CHARACTERS_APPROVED = "characters_approved"
    CHARACTERS_REGENERATED = "characters_regenerated"

    # illustration phase
    SKETCHES_REVIEW = "sketches_review"
    SKETCHES_REVISION = "sketches_revision"
    ILLUSTRATION_APPROVED = "illustration_approved"

    COMPLETED = "completed"


LEGACY_ALIASES: Dict[str, ProjectStatus] = {
    "trial_review": ProjectStatus.SKETCHES_REVIEW,
    "illustration_review": ProjectStatus.SKETCHES_REVIEW,
    "trial_revision": ProjectStatus.SKETCHES_REVISION,
    "illustration_revision_needed": ProjectStatus.SKETCHES_REVISION,
    "trial_approved": ProjectStatus.ILLUSTRATION_APPROVED,
    "illustrations_generating": ProjectStatus.CHARACTERS_APPROVED,
}


def normalize_status(raw: str) -> ProjectStatus:
    v = (raw or "").strip().lower()
    if v in LEGACY_ALIASES:
        return LEGACY_ALIASES[v]
    try:
        return ProjectStatus(v)
    except ValueError:
        raise ValueError(f"unknown project status: {raw!r}") from None


class WorkflowEvent(str, Enum):
    SEND_CHARACTERS = "send_characters"
    START_GENERATION = "start_generation"
    BATCH_SUCCEEDED = "batch_succeeded"
    BATCH_FAILED = "batch_failed"
    RETRY_GENERATION = "retry_generation"
    FAILURES_CLEARED = "failures_cleared"
    CHARACTERS_REGENERATED = "characters_regenerated"
    REQUEST_CHARACTER_REVISION = "request_character_revision"
    APPROVE_CHARACTERS = "approve_characters"
    ADMIN_APPROVE_CHARACTERS = "admin_approve_characters"

    SEND_SKETCHES = "send_sketches"
    PAGE_REGENERATED = "page_regenerated"
    APPROVE_SKETCHES = "approve_sketches"
    REQUEST_SKETCH_REVISION = "request_sketch_revision"
    ADMIN_APPROVE_ILLUSTRATIONS = "admin_approve_illustrations"
    COMPLETE = "complete"


S = ProjectStatus
E = WorkflowEvent

CHARACTER_PHASE: FrozenSet[ProjectStatus] = frozenset({
    S.DRAFT,
    S.AWAITING_CUSTOMER_INPUT,
    S.CHARACTER_REVIEW,
    S.CHARACTER_GENERATION,
    S.CHARACTER_GENERATION_COMPLETE,
    S.CHARACTER_GENERATION_FAILED,
    S.CHARACTER_REVISION_NEEDED,
    S.CHARACTERS_REGENERATED,
})

ILLUSTRATION_PHASE: FrozenSet[ProjectStatus] = frozenset({
    S.CHARACTERS_APPROVED,
    S.SKETCHES_REVIEW,
    S.SKETCHES_REVISION,
    S.ILLUSTRATION_APPROVED,
})

# customer may leave feedback in these
CHARACTER_REVIEWABLE: FrozenSet[ProjectStatus] = frozenset({
    S.CHARACTER_REVIEW,
    S.CHARACTER_REVISION_NEEDED,
    S.CHARACTERS_REGENERATED,
})
SKETCH_REVIEWABLE: FrozenSet[ProjectStatus] = frozenset({S.SKETCHES_REVIEW, S.SKETCHES_REVISION})

# a whole-batch request from these starts first-pass generation
FIRST_PASS_ENTRY: FrozenSet[ProjectStatus] = frozenset({
    S.DRAFT,
    S.AWAITING_CUSTOMER_INPUT,
    S.CHARACTER_REVIEW,
})

CHARACTERS_DONE: FrozenSet[ProjectStatus] = frozenset({
    S.CHARACTERS_APPROVED,
    S.SKETCHES_REVIEW,
    S.SKETCHES_REVISION,
    S.ILLUSTRATION_APPROVED,
    S.COMPLETED,
})
ILLUSTRATIONS_DONE: FrozenSet[ProjectStatus] = frozenset({S.ILLUSTRATION_APPROVED, S.COMPLETED})
# last customer approval stands; nothing is waiting on the customer
APPROVED: FrozenSet[ProjectStatus] = frozenset({S.CHARACTERS_APPROVED, S.ILLUSTRATION_APPROVED, S.COMPLETED})


TRANSITIONS: Dict[Tuple[ProjectStatus, WorkflowEvent], ProjectStatus] = {
    # send / resend characters for review
    (S.DRAFT, E.SEND_CHARACTERS): S.CHARACTER_REVIEW,
    (S.AWAITING_CUSTOMER_INPUT, E.SEND_CHARACTERS): S.CHARACTER_REVIEW,
    (S.CHARACTER_REVIEW, E.SEND_CHARACTERS): S.CHARACTER_REVIEW,
    (S.CHARACTER_GENERATION_COMPLETE, E.SEND_CHARACTERS): S.CHARACTER_REVIEW,
    (S.CHARACTER_GENERATION_FAILED, E.SEND_CHARACTERS): S.CHARACTER_REVIEW,
    (S.CHARACTER_REVISION_NEEDED, E.SEND_CHARACTERS): S.CHARACTER_REVIEW,
    (S.CHARACTERS_REGENERATED, E.SEND_CHARACTERS): S.CHARACTER_REVIEW,

    # first-pass generation
    (S.DRAFT, E.START_GENERATION): S.CHARACTER_GENERATION,
    (S.AWAITING_CUSTOMER_INPUT, E.START_GENERATION): S.CHARACTER_GENERATION,
    (S.CHARACTER_REVIEW, E.START_GENERATION): S.CHARACTER_GENERATION,
    (S.CHARACTER_GENERATION, E.BATCH_SUCCEEDED): S.CHARACTER_GENERATION_COMPLETE,
    (S.CHARACTER_GENERATION, E.BATCH_FAILED): S.CHARACTER_GENERATION_FAILED,
    (S.CHARACTER_GENERATION_FAILED, E.RETRY_GENERATION): S.CHARACTER_GENERATION,
    # stuck batch (process died mid-flight)
    (S.CHARACTER_GENERATION, E.RETRY_GENERATION): S.CHARACTER_GENERATION,
    # failed items regenerated one by one until none is outstanding
    (S.CHARACTER_GENERATION_FAILED, E.FAILURES_CLEARED): S.CHARACTER_GENERATION_COMPLETE,

    # revision cycle
    (S.CHARACTER_REVIEW, E.CHARACTERS_REGENERATED): S.CHARACTERS_REGENERATED,
    (S.CHARACTER_GENERATION_COMPLETE, E.CHARACTERS_REGENERATED): S.CHARACTERS_REGENERATED,
    (S.CHARACTER_REVISION_NEEDED, E.CHARACTERS_REGENERATED): S.CHARACTERS_REGENERATED,
    (S.CHARACTERS_REGENERATED, E.CHARACTERS_REGENERATED): S.CHARACTERS_REGENERATED,
    (S.CHARACTER_REVIEW, E.REQUEST_CHARACTER_REVISION): S.CHARACTER_REVISION_NEEDED,
    (S.CHARACTERS_REGENERATED, E.REQUEST_CHARACTER_REVISION): S.CHARACTER_REVISION_NEEDED,
    (S.CHARACTER_REVISION_NEEDED, E.REQUEST_CHARACTER_REVISION): S.CHARACTER_REVISION_NEEDED,
    (S.CHARACTER_REVIEW, E.APPROVE_CHARACTERS): S.CHARACTERS_APPROVED,
    (S.CHARACTERS_REGENERATED, E.APPROVE_CHARACTERS): S.CHARACTERS_APPROVED,
    (S.CHARACTER_REVIEW, E.ADMIN_APPROVE_CHARACTERS): S.CHARACTERS_APPROVED,
    (S.CHARACTER_GENERATION_COMPLETE, E.ADMIN_APPROVE_CHARACTERS): S.CHARACTERS_APPROVED,
    (S.CHARACTER_GENERATION_FAILED, E.ADMIN_APPROVE_CHARACTERS): S.CHARACTERS_APPROVED,
    (S.CHARACTER_REVISION_NEEDED, E.ADMIN_APPROVE_CHARACTERS): S.CHARACTERS_APPROVED,
    (S.CHARACTERS_REGENERATED, E.ADMIN_APPROVE_CHARACTERS): S.CHARACTERS_APPROVED,

    # illustration phase
    (S.CHARACTERS_APPROVED, E.SEND_SKETCHES): S.SKETCHES_REVIEW,
    (S.SKETCHES_REVIEW, E.SEND_SKETCHES): S.SKETCHES_REVIEW,
    (S.SKETCHES_REVISION, E.SEND_SKETCHES): S.SKETCHES_REVIEW,
    (S.CHARACTERS_APPROVED, E.PAGE_REGENERATED): S.CHARACTERS_APPROVED,
    (S.SKETCHES_REVIEW, E.PAGE_REGENERATED): S.SKETCHES_REVISION,
    (S.SKETCHES_REVISION, E.PAGE_REGENERATED): S.SKETCHES_REVISION,
    (S.ILLUSTRATION_APPROVED, E.PAGE_REGENERATED): S.ILLUSTRATION_APPROVED,
    (S.SKETCHES_REVIEW, E.APPROVE_SKETCHES): S.ILLUSTRATION_APPROVED,
    (S.SKETCHES_REVISION, E.APPROVE_SKETCHES): S.ILLUSTRATION_APPROVED,
    (S.SKETCHES_REVIEW, E.REQUEST_SKETCH_REVISION): S.SKETCHES_REVISION,
    (S.SKETCHES_REVISION, E.REQUEST_SKETCH_REVISION): S.SKETCHES_REVISION,
    (S.CHARACTERS_APPROVED, E.ADMIN_APPROVE_ILLUSTRATIONS): S.ILLUSTRATION_APPROVED,
    (S.SKETCHES_REVIEW, E.ADMIN_APPROVE_ILLUSTRATIONS): S.ILLUSTRATION_APPROVED,
    (S.SKETCHES_REVISION, E.ADMIN_APPROVE_ILLUSTRATIONS): S.ILLUSTRATION_APPROVED,
    (S.ILLUSTRATION_APPROVED, E.COMPLETE): S.COMPLETED,
}


def can_apply(current: ProjectStatus, event: WorkflowEvent) -> Optional[ProjectStatus]:
    return TRANSITIONS.get((current, event))


def next_status(current: ProjectStatus, event: WorkflowEvent) -> ProjectStatus:
    target = TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransition(
            f"cannot {event.value.replace('_', ' ')} while project is {current.value}",
            details={"status": current.value, "event": event.value},
        )
    return target
