"""
Per-item artifact state.

The reference columns (image_url, illustration_url, sketch_url) keep their
historical encoding so existing rows stay readable:
  NULL / ""          -> NotStarted
  "error:<reason>"   -> Failed
  anything else      -> Ready
Pending is never stored. WorkflowOrchestrator.artifact_state reports it for items
whose generation call is in flight in this process.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

ERROR_PREFIX = "error:"


@dataclass(frozen=True)
class NotStarted:
    pass


@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Ready:
    ref: str


@dataclass(frozen=True)
class Failed:
    reason: str


ArtifactState = Union[NotStarted, Pending, Ready, Failed]


def decode(value: Optional[str]) -> ArtifactState:
    if value is None or not str(value).strip():
        return NotStarted()
    v = str(value)
    if v.startswith(ERROR_PREFIX):
        return Failed(reason=v[len(ERROR_PREFIX) :].strip() or "unknown error")
    return Ready(ref=v)


def encode(state: ArtifactState) -> Optional[str]:
    if isinstance(state, Ready):
        return state.ref
    if isinstance(state, Failed):
        # single line, bounded: the column is also shown to admins as-is
        reason = " ".join((state.reason or "unknown error").split())[:500]
        return f"{ERROR_PREFIX}{reason}"
    if isinstance(state, Pending):
        raise ValueError("Pending is not persisted")
    return None


def needs_generation(state: ArtifactState) -> bool:
    return isinstance(state, (NotStarted, Failed))


def ready_ref(value: Optional[str]) -> Optional[str]:
    st = decode(value)
    return st.ref if isinstance(st, Ready) else None
