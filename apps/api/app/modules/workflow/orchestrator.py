"""
Workflow orchestrator.

Reads current status from the store, validates the transition, fans generation
calls out concurrently, writes each item's outcome as soon as it settles, and
applies the aggregate status transition only after the whole batch has joined.

Known limitation: there is no cross-request lock. Two retries racing on the same
project can both read an item as pending before either writes it; the in-process
in-flight set narrows this within one worker, status writes are compare-and-set,
and the worst case is one redundant generation for that item.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from app.core.errors import InvalidTransition, NotFound, ValidationFailed
from app.core.ids import new_ulid
from app.core.logging import emit
from app.core.storage import BlobStorage
from app.core.tasks import TaskSupervisor
from app.modules.generation.errors import describe_generation_error
from app.modules.generation.providers.base import GenerationClient, GenerationKind, GenerationResult
from app.modules.notifications.gateway import NotificationEvent, NotificationGateway

from . import ledger
from .artifacts import ArtifactState, Failed, Pending, Ready, decode, encode, needs_generation, ready_ref
from .status import (
    CHARACTER_PHASE,
    CHARACTER_REVIEWABLE,
    CHARACTERS_DONE,
    FIRST_PASS_ENTRY,
    ILLUSTRATION_PHASE,
    ILLUSTRATIONS_DONE,
    SKETCH_REVIEWABLE,
    ProjectStatus,
    WorkflowEvent,
    can_apply,
    next_status,
    normalize_status,
)
from .store import ArtifactStore


class Target(str, Enum):
    CHARACTERS = "characters"
    PAGES = "pages"


class BatchMode(str, Enum):
    FIRST_PASS = "first_pass"
    REVISION = "revision"
    PAGES = "pages"


@dataclass(frozen=True)
class _TargetLayout:
    target: Target
    artifact_field: str
    customer_artifact_field: str
    counter: str
    primary_kind: GenerationKind
    sketch_kind: GenerationKind
    sketch_field: str = "sketch_url"
    customer_sketch_field: str = "customer_sketch_url"


_LAYOUTS: Dict[Target, _TargetLayout] = {
    Target.CHARACTERS: _TargetLayout(
        target=Target.CHARACTERS,
        artifact_field="image_url",
        customer_artifact_field="customer_image_url",
        counter="character_send_count",
        primary_kind=GenerationKind.CHARACTER_PORTRAIT,
        sketch_kind=GenerationKind.CHARACTER_SKETCH,
    ),
    Target.PAGES: _TargetLayout(
        target=Target.PAGES,
        artifact_field="illustration_url",
        customer_artifact_field="customer_illustration_url",
        counter="illustration_send_count",
        primary_kind=GenerationKind.PAGE_ILLUSTRATION,
        sketch_kind=GenerationKind.PAGE_SKETCH,
    ),
}


@dataclass
class DispatchTicket:
    accepted: bool
    status: str
    reason: Optional[str] = None
    item_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchOutcome:
    project_id: str
    target: str
    succeeded: List[str]
    failed: Dict[str, str]
    status: str

    @property
    def all_succeeded(self) -> bool:
        return not self.failed


@dataclass
class TransitionOutcome:
    status: str
    changed: bool
    generation: Optional[DispatchTicket] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "changed": self.changed,
            "generation": self.generation.to_dict() if self.generation else None,
        }


def _layout(target: Target) -> _TargetLayout:
    return _LAYOUTS[Target(target)]


class WorkflowOrchestrator:
    def __init__(
        self,
        store: ArtifactStore,
        generator: GenerationClient,
        notifier: NotificationGateway,
        blobs: BlobStorage,
        supervisor: TaskSupervisor,
        *,
        generation_timeout: float = 180.0,
        review_base_url: str = "http://localhost:2000",
    ) -> None:
        self.store = store
        self.generator = generator
        self.notifier = notifier
        self.blobs = blobs
        self.supervisor = supervisor
        self.generation_timeout = generation_timeout
        self.review_base_url = review_base_url.rstrip("/")
        self._inflight: Set[str] = set()

    # -------------------------
    # plumbing
    # -------------------------
    async def _io(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await asyncio.to_thread(fn, *args, **kwargs)

    async def _get_item(self, target: Target, item_id: str) -> Dict[str, Any]:
        if target == Target.CHARACTERS:
            return await self._io(self.store.get_character, item_id)
        return await self._io(self.store.get_page, item_id)

    async def _update_item(self, target: Target, item_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        if target == Target.CHARACTERS:
            return await self._io(self.store.update_character, item_id, patch)
        return await self._io(self.store.update_page, item_id, patch)

    async def _list_items(self, target: Target, project_id: str) -> List[Dict[str, Any]]:
        if target == Target.CHARACTERS:
            return await self._io(self.store.list_characters, project_id)
        return await self._io(self.store.list_pages, project_id)

    async def _item_in_project(self, target: Target, item_id: str, project_id: Optional[str]) -> Dict[str, Any]:
        item = await self._get_item(target, item_id)
        if project_id is not None and item["project_id"] != project_id:
            # do not reveal items of other projects through a review token
            raise NotFound(f"{target.value[:-1]} not found", details={"item_id": item_id})
        return item

    async def project_id_for_token(self, token: str) -> str:
        project = await self._io(self.store.get_project_by_token, token)
        return project["id"]

    async def _transition(self, project: Dict[str, Any], event: WorkflowEvent) -> ProjectStatus:
        raw = project["status"]
        current = normalize_status(raw)
        target = next_status(current, event)
        if target.value == raw:
            return target
        ok = await self._io(self.store.set_status, project["id"], target.value, expected=[raw])
        if not ok:
            raise InvalidTransition(
                "project status changed concurrently, reload and retry",
                details={"expected": raw, "event": event.value},
            )
        emit("info", "workflow.transition", f"{current.value} -> {target.value}", None, __name__,
             project_id=project["id"], workflow_event=event.value)
        return target

    def _notify(self, event: NotificationEvent, project: Dict[str, Any], request_id: Optional[str] = None, **extra: Any) -> None:
        payload: Dict[str, Any] = {
            "project_id": project["id"],
            "project_title": project.get("title"),
            "request_id": request_id,
        }
        payload.update(extra)
        self.supervisor.spawn(
            self.notifier.notify(event, payload),
            name=f"notify:{event.value}:{project['id']}",
            request_id=request_id,
        )

    # -------------------------
    # generation dispatch
    # -------------------------
    async def request_generation(
        self,
        project_id: str,
        target: Target,
        item_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> DispatchTicket:
        """
        Dispatch generation for every pending item of `target`, or for one
        explicit item. Returns as soon as the batch is spawned.
        """
        target = Target(target)
        project = await self._io(self.store.get_project, project_id)
        status = normalize_status(project["status"])

        if item_id is not None:
            item = await self._item_in_project(target, item_id, project_id)
            allowed = (CHARACTER_PHASE - {ProjectStatus.CHARACTER_GENERATION}) if target == Target.CHARACTERS else ILLUSTRATION_PHASE
            if status not in allowed:
                raise InvalidTransition(
                    f"cannot regenerate {target.value} while project is {status.value}",
                    details={"status": status.value},
                )
            if item_id in self._inflight:
                return DispatchTicket(False, status.value, "already_in_flight", [item_id])
            mode = BatchMode.REVISION if target == Target.CHARACTERS else BatchMode.PAGES
            return self._dispatch(project, target, [item["id"]], mode, status, request_id)

        items = await self._list_items(target, project_id)
        if target == Target.CHARACTERS:
            if status == ProjectStatus.CHARACTER_GENERATION:
                return DispatchTicket(False, status.value, "already_generating")
            if status == ProjectStatus.CHARACTER_GENERATION_FAILED:
                return await self.retry_generation(project_id, target, request_id=request_id)
            if status not in CHARACTER_PHASE:
                raise InvalidTransition(
                    f"cannot generate characters while project is {status.value}",
                    details={"status": status.value},
                )
            self._require_main_image(items)
            pending = [c["id"] for c in items if not c["is_main"] and self._is_pending(c, "image_url")]
            if not pending:
                return DispatchTicket(False, status.value, "no_pending_items")
            if status in FIRST_PASS_ENTRY:
                status = await self._transition(project, WorkflowEvent.START_GENERATION)
                return self._dispatch(project, target, pending, BatchMode.FIRST_PASS, status, request_id)
            return self._dispatch(project, target, pending, BatchMode.REVISION, status, request_id)

        if status not in ILLUSTRATION_PHASE:
            raise InvalidTransition(
                f"cannot generate pages while project is {status.value}",
                details={"status": status.value},
            )
        pending = [p["id"] for p in items if self._is_pending(p, "illustration_url")]
        if not pending:
            return DispatchTicket(False, status.value, "no_pending_items")
        return self._dispatch(project, target, pending, BatchMode.PAGES, status, request_id)

    async def retry_generation(
        self,
        project_id: str,
        target: Target = Target.CHARACTERS,
        request_id: Optional[str] = None,
    ) -> DispatchTicket:
        """
        Re-dispatch whatever is still pending, recomputed from stored state.
        With nothing pending this is a no-op and the status is left alone.
        """
        target = Target(target)
        if target == Target.PAGES:
            return await self.request_generation(project_id, target, request_id=request_id)

        project = await self._io(self.store.get_project, project_id)
        status = normalize_status(project["status"])
        if status not in (ProjectStatus.CHARACTER_GENERATION_FAILED, ProjectStatus.CHARACTER_GENERATION):
            next_status(status, WorkflowEvent.RETRY_GENERATION)

        characters = await self._list_items(Target.CHARACTERS, project_id)
        self._require_main_image(characters)
        pending = [c["id"] for c in characters if not c["is_main"] and self._is_pending(c, "image_url")]
        if not pending:
            emit("info", "generation.retry_noop", "nothing pending", request_id, __name__, project_id=project_id)
            return DispatchTicket(False, status.value, "no_pending_items")

        status = await self._transition(project, WorkflowEvent.RETRY_GENERATION)
        return self._dispatch(project, Target.CHARACTERS, pending, BatchMode.FIRST_PASS, status, request_id)

    def artifact_state(self, item: Dict[str, Any], artifact_field: str) -> ArtifactState:
        """Stored state, or Pending while this process has a generation call in flight for the item."""
        if item["id"] in self._inflight:
            return Pending()
        return decode(item.get(artifact_field))

    def _is_pending(self, item: Dict[str, Any], artifact_field: str) -> bool:
        return needs_generation(self.artifact_state(item, artifact_field))

    @staticmethod
    def _require_main_image(characters: List[Dict[str, Any]]) -> None:
        main = next((c for c in characters if c["is_main"]), None)
        if main is None or not isinstance(decode(main.get("image_url")), Ready):
            raise ValidationFailed("main character needs an image before other characters are generated")

    def _dispatch(
        self,
        project: Dict[str, Any],
        target: Target,
        item_ids: List[str],
        mode: BatchMode,
        status: ProjectStatus,
        request_id: Optional[str],
    ) -> DispatchTicket:
        self._inflight.update(item_ids)
        self.supervisor.spawn(
            self.run_batch(project["id"], target, item_ids, mode, request_id=request_id),
            name=f"generation:{target.value}:{project['id']}",
            request_id=request_id,
        )
        emit("info", "generation.dispatched", f"{len(item_ids)} {target.value}", request_id, __name__,
             project_id=project["id"], mode=mode.value)
        return DispatchTicket(True, status.value, None, list(item_ids))

    async def run_batch(
        self,
        project_id: str,
        target: Target,
        item_ids: List[str],
        mode: BatchMode,
        request_id: Optional[str] = None,
    ) -> BatchOutcome:
        """Generate every item concurrently; join on all of them, then apply the aggregate transition."""
        target = Target(target)
        layout = _layout(target)
        self._inflight.update(item_ids)
        try:
            project = await self._io(self.store.get_project, project_id)
            results = await asyncio.gather(
                *[self._generate_one(layout, project, iid, request_id) for iid in item_ids],
                return_exceptions=True,
            )
        finally:
            self._inflight.difference_update(item_ids)

        succeeded: List[str] = []
        failed: Dict[str, str] = {}
        for iid, res in zip(item_ids, results):
            if isinstance(res, BaseException):
                failed[iid] = f"{type(res).__name__}: {res}"
                emit("error", "generation.item_crashed", failed[iid], request_id, __name__, item_id=iid)
                await self._record_crash(layout, iid, failed[iid], request_id)
            elif res is None:
                succeeded.append(iid)
            else:
                failed[iid] = res

        project = await self._io(self.store.get_project, project_id)
        status = await self._apply_batch_outcome(project, mode, not failed, request_id)

        emit("info", "generation.batch_done", f"{len(succeeded)} ok, {len(failed)} failed", request_id, __name__,
             project_id=project_id, target=target.value, status=status.value)
        self._notify(
            NotificationEvent.GENERATION_FINISHED,
            project,
            request_id,
            phase=target.value,
            succeeded=len(succeeded),
            failed=len(failed),
            status=status.value,
        )
        return BatchOutcome(project_id, target.value, succeeded, failed, status.value)

    async def _apply_batch_outcome(
        self, project: Dict[str, Any], mode: BatchMode, all_ok: bool, request_id: Optional[str]
    ) -> ProjectStatus:
        status = normalize_status(project["status"])
        if mode == BatchMode.FIRST_PASS:
            if status != ProjectStatus.CHARACTER_GENERATION:
                emit("warning", "generation.status_moved", f"batch finished in {status.value}", request_id, __name__,
                     project_id=project["id"])
                return status
            event = WorkflowEvent.BATCH_SUCCEEDED if all_ok else WorkflowEvent.BATCH_FAILED
        elif not all_ok:
            # failed revision items keep their sentinel; the phase status does not move
            return status
        elif mode == BatchMode.REVISION:
            if status == ProjectStatus.CHARACTER_GENERATION_FAILED:
                if await self._characters_outstanding(project["id"]):
                    return status
                event = WorkflowEvent.FAILURES_CLEARED
            elif int(project.get("character_send_count") or 0) == 0:
                return status
            else:
                event = WorkflowEvent.CHARACTERS_REGENERATED
        else:
            event = WorkflowEvent.PAGE_REGENERATED

        if can_apply(status, event) is None:
            return status
        try:
            return await self._transition(project, event)
        except InvalidTransition as e:
            emit("warning", "generation.status_conflict", e.message, request_id, __name__, project_id=project["id"])
            return normalize_status((await self._io(self.store.get_project, project["id"]))["status"])

    async def _characters_outstanding(self, project_id: str) -> List[str]:
        characters = await self._list_items(Target.CHARACTERS, project_id)
        return [
            c["id"] for c in characters
            if not c["is_main"] and not isinstance(self.artifact_state(c, "image_url"), Ready)
        ]

    async def _record_crash(self, layout: _TargetLayout, item_id: str, reason: str, request_id: Optional[str]) -> None:
        # the crash happened outside the generator call, so nothing was written for the item yet
        try:
            await self._update_item(layout.target, item_id, {layout.artifact_field: encode(Failed(reason))})
        except Exception as e:
            emit("error", "generation.sentinel_write_failed", f"{type(e).__name__}: {e}", request_id, __name__,
                 item_id=item_id)

    async def _call_generator(self, kind: GenerationKind, input_refs: List[str], prompt: str, request_id: Optional[str]) -> GenerationResult:
        try:
            return await asyncio.wait_for(
                self.generator.generate(kind=kind, input_refs=input_refs, prompt=prompt, request_id=request_id),
                timeout=self.generation_timeout,
            )
        except asyncio.TimeoutError:
            return GenerationResult.failed(f"generation timed out after {self.generation_timeout:g}s")
        except Exception as e:
            return GenerationResult.failed(f"{type(e).__name__}: {e}")

    def _store_artifact(self, project_id: str, target: Target, item_id: str, kind: GenerationKind, artifact: Any) -> str:
        if isinstance(artifact, str) and artifact.strip():
            return artifact.strip()
        if isinstance(artifact, (bytes, bytearray)) and artifact:
            rel = f"projects/{project_id}/{target.value}/{item_id}/{kind.value}-{new_ulid()}.png"
            return self.blobs.upload(rel, bytes(artifact))
        raise ValueError("no image generated")

    async def _generate_one(
        self, layout: _TargetLayout, project: Dict[str, Any], item_id: str, request_id: Optional[str]
    ) -> Optional[str]:
        """Returns None on success, the failure reason otherwise. The outcome is persisted before returning."""
        item = await self._get_item(layout.target, item_id)
        refs = await self._input_refs(layout.target, project, item)
        result = await self._call_generator(layout.primary_kind, refs, self._prompt(layout.target, item), request_id)

        ref: Optional[str] = None
        if result.success:
            try:
                ref = await self._io(self._store_artifact, project["id"], layout.target, item_id, layout.primary_kind, result.artifact)
            except Exception as e:
                result = GenerationResult.failed(f"storage upload failed: {e}")

        if ref is None:
            reason = result.error or "unknown error"
            await self._update_item(layout.target, item_id, {layout.artifact_field: encode(Failed(reason))})
            emit("warning", "generation.item_failed", describe_generation_error(reason).message, request_id, __name__,
                 project_id=project["id"], item_id=item_id, error=reason)
            return reason

        # re-read right before writing: feedback may have moved while the call was in flight
        fresh = await self._get_item(layout.target, item_id)
        latest = await self._io(self.store.get_project, project["id"])
        patch = ledger.resolve_by_regeneration(fresh, ledger.revision_round(latest.get(layout.counter)))
        patch[layout.sketch_field] = None
        if layout.target == Target.PAGES:
            await self._io(self.store.record_page_illustration, item_id, ref, patch)
        else:
            patch[layout.artifact_field] = ref
            await self._update_item(layout.target, item_id, patch)

        self.supervisor.spawn(
            self._generate_sketch(layout, project["id"], item_id, ref, request_id),
            name=f"sketch:{layout.target.value}:{item_id}",
            request_id=request_id,
        )
        return None

    async def _generate_sketch(
        self, layout: _TargetLayout, project_id: str, item_id: str, source_ref: str, request_id: Optional[str]
    ) -> None:
        """Best effort: a failed sketch is recorded on the item and logged, status never moves."""
        try:
            result = await self._call_generator(layout.sketch_kind, [source_ref], "pencil sketch", request_id)
            if result.success:
                value = await self._io(self._store_artifact, project_id, layout.target, item_id, layout.sketch_kind, result.artifact)
            else:
                value = encode(Failed(result.error or "unknown error"))
            current = await self._get_item(layout.target, item_id)
            if current.get(layout.artifact_field) != source_ref:
                # a newer artifact replaced the source; its own sketch is on the way
                return
            await self._update_item(layout.target, item_id, {layout.sketch_field: value})
            if not result.success:
                emit("warning", "sketch.failed", result.error or "unknown error", request_id, __name__,
                     project_id=project_id, item_id=item_id)
        except Exception as e:
            emit("error", "sketch.crashed", f"{type(e).__name__}: {e}", request_id, __name__,
                 project_id=project_id, item_id=item_id)

    async def _input_refs(self, target: Target, project: Dict[str, Any], item: Dict[str, Any]) -> List[str]:
        characters = await self._list_items(Target.CHARACTERS, project["id"])
        if target == Target.CHARACTERS:
            if item["is_main"]:
                return []
            main = next((c for c in characters if c["is_main"]), None)
            ref = ready_ref(main.get("image_url")) if main else None
            return [ref] if ref else []

        wanted = set(item.get("character_ids") or [])
        refs = [
            r for r in (ready_ref(c.get("image_url")) for c in characters if not wanted or c["id"] in wanted) if r
        ]
        style_id = project.get("style_reference_page_id")
        if style_id and style_id != item["id"]:
            try:
                style_page = await self._get_item(Target.PAGES, style_id)
            except NotFound:
                style_page = None
            style_ref = ready_ref(style_page.get("illustration_url")) if style_page else None
            if style_ref:
                refs.append(style_ref)
        return refs

    @staticmethod
    def _prompt(target: Target, item: Dict[str, Any]) -> str:
        if target == Target.CHARACTERS:
            parts = [item.get("name") or "character", item.get("role") or "", item.get("description") or ""]
        else:
            parts = [item.get("scene_description") or item.get("story_text") or ""]
        if ledger.has_open_feedback(item):
            parts.append(f"Revision request: {item['feedback_notes'].strip()}")
        return "\n".join(p for p in parts if p)

    # -------------------------
    # feedback
    # -------------------------
    async def submit_feedback(
        self, target: Target, item_id: str, note: str, project_id: Optional[str] = None
    ) -> Dict[str, Any]:
        target = Target(target)
        layout = _layout(target)
        item = await self._item_in_project(target, item_id, project_id)
        project = await self._io(self.store.get_project, item["project_id"])
        status = normalize_status(project["status"])
        reviewable = CHARACTER_REVIEWABLE if target == Target.CHARACTERS else SKETCH_REVIEWABLE
        if status not in reviewable:
            raise InvalidTransition(
                f"{target.value} are not open for feedback while project is {status.value}",
                details={"status": status.value},
            )
        patch = ledger.submit_note(item, note, ledger.revision_round(project.get(layout.counter)))
        return await self._update_item(target, item_id, patch)

    async def _page_in_review(self, page_id: str, project_id: Optional[str]) -> Dict[str, Any]:
        page = await self._item_in_project(Target.PAGES, page_id, project_id)
        project = await self._io(self.store.get_project, page["project_id"])
        status = normalize_status(project["status"])
        if status not in SKETCH_REVIEWABLE:
            raise InvalidTransition(
                f"pages are not open for review while project is {status.value}",
                details={"status": status.value},
            )
        return page

    async def follow_up(self, page_id: str, note: str, project_id: Optional[str] = None, request_id: Optional[str] = None) -> Dict[str, Any]:
        page = await self._page_in_review(page_id, project_id)
        updated = await self._io(self.store.update_page, page_id, ledger.append_follow_up(page, note))
        project = await self._io(self.store.get_project, page["project_id"])
        self._notify(NotificationEvent.CUSTOMER_FOLLOW_UP, project, request_id, page_number=page["page_number"])
        return updated

    async def set_admin_reply(self, page_id: str, text: str) -> Dict[str, Any]:
        page = await self._io(self.store.get_page, page_id)
        return await self._io(self.store.update_page, page_id, ledger.set_admin_reply(page, text))

    async def accept_reply(self, page_id: str, project_id: Optional[str] = None) -> Dict[str, Any]:
        page = await self._page_in_review(page_id, project_id)
        project = await self._io(self.store.get_project, page["project_id"])
        patch = ledger.accept_reply(page, ledger.revision_round(project.get("illustration_send_count")))
        return await self._io(self.store.update_page, page_id, patch)

    async def resolve(
        self, target: Target, item_id: str, mode: str = "manual", request_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        mode="manual": mark handled without a new artifact (no-op when nothing is open).
        mode="regenerate": dispatch generation for the item; success archives the note.
        """
        target = Target(target)
        item = await self._get_item(target, item_id)
        if mode == "regenerate":
            ticket = await self.request_generation(item["project_id"], target, item_id, request_id=request_id)
            return {"item": item, "generation": ticket.to_dict()}
        if mode != "manual":
            raise ValidationFailed(f"unknown resolve mode: {mode!r}", details={"allowed": ["manual", "regenerate"]})
        if not ledger.has_open_feedback(item):
            return {"item": item, "generation": None}
        project = await self._io(self.store.get_project, item["project_id"])
        patch = ledger.resolve_manually(item, ledger.revision_round(project.get(_layout(target).counter)))
        return {"item": await self._update_item(target, item_id, patch), "generation": None}

    # -------------------------
    # phase transitions
    # -------------------------
    async def submit_review(self, project_id: str, request_id: Optional[str] = None) -> TransitionOutcome:
        """Customer finished a review pass."""
        project = await self._io(self.store.get_project, project_id)
        status = normalize_status(project["status"])

        if status in SKETCH_REVIEWABLE:
            pages = await self._list_items(Target.PAGES, project_id)
            event = WorkflowEvent.REQUEST_SKETCH_REVISION if ledger.any_open_feedback(pages) else WorkflowEvent.APPROVE_SKETCHES
            new = await self._transition(project, event)
            self._notify(NotificationEvent.CUSTOMER_SUBMITTED, project, request_id, phase="pages", status=new.value)
            return TransitionOutcome(new.value, new != status)

        characters = await self._list_items(Target.CHARACTERS, project_id)
        pending = [c for c in characters if not c["is_main"] and needs_generation(decode(c.get("image_url")))]
        if status in FIRST_PASS_ENTRY and pending:
            ticket = await self.request_generation(project_id, Target.CHARACTERS, request_id=request_id)
            self._notify(NotificationEvent.CUSTOMER_SUBMITTED, project, request_id, phase="characters", status=ticket.status)
            return TransitionOutcome(ticket.status, ticket.accepted, ticket)

        event = (
            WorkflowEvent.REQUEST_CHARACTER_REVISION
            if ledger.any_open_feedback(characters)
            else WorkflowEvent.APPROVE_CHARACTERS
        )
        new = await self._transition(project, event)
        self._notify(NotificationEvent.CUSTOMER_SUBMITTED, project, request_id, phase="characters", status=new.value)
        return TransitionOutcome(new.value, new != status)

    async def approve(
        self,
        project_id: str,
        actor: str = "customer",
        phase: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> TransitionOutcome:
        """
        Customer approval requires no open feedback. Admin approval is an override:
        open feedback is archived with resolved_by=override. Approving an already
        approved phase succeeds without changes.
        """
        if actor not in ("customer", "admin"):
            raise ValidationFailed(f"unknown actor: {actor!r}")
        project = await self._io(self.store.get_project, project_id)
        status = normalize_status(project["status"])

        if phase is None:
            in_pages = status in ILLUSTRATION_PHASE or status == ProjectStatus.COMPLETED
            if actor == "customer" and status == ProjectStatus.CHARACTERS_APPROVED:
                in_pages = False
            phase = "pages" if in_pages else "characters"
        if phase not in ("characters", "pages"):
            raise ValidationFailed(f"unknown phase: {phase!r}", details={"allowed": ["characters", "pages"]})

        target = Target.CHARACTERS if phase == "characters" else Target.PAGES
        done = CHARACTERS_DONE if target == Target.CHARACTERS else ILLUSTRATIONS_DONE
        if status in done:
            return TransitionOutcome(status.value, False)

        if target == Target.CHARACTERS:
            event = WorkflowEvent.APPROVE_CHARACTERS if actor == "customer" else WorkflowEvent.ADMIN_APPROVE_CHARACTERS
        else:
            event = WorkflowEvent.APPROVE_SKETCHES if actor == "customer" else WorkflowEvent.ADMIN_APPROVE_ILLUSTRATIONS
        next_status(status, event)

        items = await self._list_items(target, project_id)
        open_items = [i for i in items if ledger.has_open_feedback(i)]
        if open_items and actor == "customer":
            raise ValidationFailed(
                "open feedback must be resolved before approval",
                details={"item_ids": [i["id"] for i in open_items]},
            )
        rnd = ledger.revision_round(project.get(_layout(target).counter))
        for item in open_items:
            await self._update_item(target, item["id"], ledger.resolve_by_override(item, rnd))

        new = await self._transition(project, event)
        self._notify(NotificationEvent.PROJECT_APPROVED, project, request_id, phase=phase, status=new.value, actor=actor)
        return TransitionOutcome(new.value, True)

    async def send_to_customer(self, project_id: str, request_id: Optional[str] = None) -> TransitionOutcome:
        """
        Publish the current round: archive open notes into the closing round,
        copy ready artifacts into the customer_* fields, bump the send counter.
        """
        project = await self._io(self.store.get_project, project_id)
        status = normalize_status(project["status"])
        if status in CHARACTER_PHASE:
            target, event = Target.CHARACTERS, WorkflowEvent.SEND_CHARACTERS
        else:
            target, event = Target.PAGES, WorkflowEvent.SEND_SKETCHES
        next_status(status, event)
        layout = _layout(target)

        items = await self._list_items(target, project_id)
        rnd = ledger.revision_round(project.get(layout.counter))
        published = 0
        for item in items:
            patch = ledger.resolve_on_send(item, rnd)
            artifact = ready_ref(item.get(layout.artifact_field))
            if artifact:
                published += 1
                patch[layout.customer_artifact_field] = artifact
                sketch = ready_ref(item.get(layout.sketch_field))
                if sketch:
                    patch[layout.customer_sketch_field] = sketch
            if patch:
                await self._update_item(target, item["id"], patch)
        if published:
            await self._io(self.store.increment_send_count, project_id, layout.counter)

        new = await self._transition(project, event)
        self._notify(
            NotificationEvent.SENT_TO_CUSTOMER,
            project,
            request_id,
            phase=target.value,
            status=new.value,
            review_url=f"{self.review_base_url}/review/{project['review_token']}",
        )
        return TransitionOutcome(new.value, True)

    async def reset_to_original(self, page_id: str, request_id: Optional[str] = None) -> Dict[str, Any]:
        page = await self._io(self.store.get_page, page_id)
        project = await self._io(self.store.get_project, page["project_id"])
        status = normalize_status(project["status"])
        if status not in ILLUSTRATION_PHASE:
            raise InvalidTransition(f"cannot reset pages while project is {status.value}", details={"status": status.value})
        original = ready_ref(page.get("original_illustration_url"))
        if not original:
            raise ValidationFailed("page has no original illustration")
        if page.get("illustration_url") == original:
            return page
        updated = await self._io(self.store.update_page, page_id, {"illustration_url": original, "sketch_url": None})
        self.supervisor.spawn(
            self._generate_sketch(_layout(Target.PAGES), project["id"], page_id, original, request_id),
            name=f"sketch:pages:{page_id}",
            request_id=request_id,
        )
        return updated

    async def complete(self, project_id: str, request_id: Optional[str] = None) -> TransitionOutcome:
        project = await self._io(self.store.get_project, project_id)
        status = normalize_status(project["status"])
        if status == ProjectStatus.COMPLETED:
            return TransitionOutcome(status.value, False)
        new = await self._transition(project, WorkflowEvent.COMPLETE)
        self._notify(NotificationEvent.PROJECT_COMPLETED, project, request_id, status=new.value)
        return TransitionOutcome(new.value, True)
