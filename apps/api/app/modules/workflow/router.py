from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Request
from fastapi.responses import JSONResponse

from app.modules.characters.schemas import CharacterReviewOut
from app.modules.characters.service import to_out as character_out
from app.modules.characters.service import to_review as character_review
from app.modules.pages.schemas import StoryPageOut, StoryPageReviewOut
from app.modules.pages.service import to_out as page_out
from app.modules.pages.service import to_review as page_review

from .deps import get_orchestrator
from .orchestrator import DispatchTicket, Target, WorkflowOrchestrator
from .schemas import (
    ApproveIn,
    DispatchTicketOut,
    FeedbackIn,
    GenerationIn,
    ReplyIn,
    ResolveIn,
    ResolveOut,
    RetryIn,
    TransitionOut,
)

router = APIRouter(tags=["workflow"])


def _rid(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _ticket_response(ticket: DispatchTicket) -> JSONResponse:
    # 202 when work was dispatched; a no-op answer is a plain 200
    return JSONResponse(status_code=202 if ticket.accepted else 200, content=ticket.to_dict())


async def _resolve(orch: WorkflowOrchestrator, target: Target, item_id: str, body: Optional[ResolveIn], rid: Optional[str]) -> Dict[str, Any]:
    mode = (body or ResolveIn()).mode
    out = await orch.resolve(target, item_id, mode, request_id=rid)
    item = character_out(out["item"]) if target == Target.CHARACTERS else page_out(out["item"])
    return {"item": item, "generation": out["generation"]}


# -------------------------
# admin
# -------------------------
@router.post("/projects/{project_id}/generation", response_model=DispatchTicketOut, status_code=202)
async def api_request_generation(
    request: Request,
    body: Optional[GenerationIn] = None,
    project_id: str = Path(...),
    orch: WorkflowOrchestrator = Depends(get_orchestrator),
):
    body = body or GenerationIn()
    ticket = await orch.request_generation(project_id, Target(body.target), body.item_id, request_id=_rid(request))
    return _ticket_response(ticket)


@router.post("/projects/{project_id}/generation/retry", response_model=DispatchTicketOut, status_code=202)
async def api_retry_generation(
    request: Request,
    body: Optional[RetryIn] = None,
    project_id: str = Path(...),
    orch: WorkflowOrchestrator = Depends(get_orchestrator),
):
    body = body or RetryIn()
    ticket = await orch.retry_generation(project_id, Target(body.target), request_id=_rid(request))
    return _ticket_response(ticket)


@router.post("/projects/{project_id}/send-to-customer", response_model=TransitionOut)
async def api_send_to_customer(
    request: Request, project_id: str = Path(...), orch: WorkflowOrchestrator = Depends(get_orchestrator)
) -> TransitionOut:
    return (await orch.send_to_customer(project_id, request_id=_rid(request))).to_dict()


@router.post("/projects/{project_id}/approve", response_model=TransitionOut)
async def api_admin_approve(
    request: Request,
    body: Optional[ApproveIn] = None,
    project_id: str = Path(...),
    orch: WorkflowOrchestrator = Depends(get_orchestrator),
) -> TransitionOut:
    phase = body.phase if body else None
    out = await orch.approve(project_id, actor="admin", phase=phase, request_id=_rid(request))
    return out.to_dict()


@router.post("/projects/{project_id}/complete", response_model=TransitionOut)
async def api_complete(
    request: Request, project_id: str = Path(...), orch: WorkflowOrchestrator = Depends(get_orchestrator)
) -> TransitionOut:
    return (await orch.complete(project_id, request_id=_rid(request))).to_dict()


@router.post("/pages/{page_id}/admin-reply", response_model=StoryPageOut)
async def api_admin_reply(
    body: ReplyIn, page_id: str = Path(...), orch: WorkflowOrchestrator = Depends(get_orchestrator)
) -> StoryPageOut:
    return page_out(await orch.set_admin_reply(page_id, body.text))


@router.post("/characters/{character_id}/resolve", response_model=ResolveOut)
async def api_resolve_character(
    request: Request,
    body: Optional[ResolveIn] = None,
    character_id: str = Path(...),
    orch: WorkflowOrchestrator = Depends(get_orchestrator),
) -> ResolveOut:
    return await _resolve(orch, Target.CHARACTERS, character_id, body, _rid(request))


@router.post("/pages/{page_id}/resolve", response_model=ResolveOut)
async def api_resolve_page(
    request: Request,
    body: Optional[ResolveIn] = None,
    page_id: str = Path(...),
    orch: WorkflowOrchestrator = Depends(get_orchestrator),
) -> ResolveOut:
    return await _resolve(orch, Target.PAGES, page_id, body, _rid(request))


@router.post("/pages/{page_id}/reset-to-original", response_model=StoryPageOut)
async def api_reset_to_original(
    request: Request, page_id: str = Path(...), orch: WorkflowOrchestrator = Depends(get_orchestrator)
) -> StoryPageOut:
    return page_out(await orch.reset_to_original(page_id, request_id=_rid(request)))


# -------------------------
# customer (capability token)
# -------------------------
@router.post("/review/{token}/submit", response_model=TransitionOut)
async def api_review_submit(
    request: Request, token: str = Path(...), orch: WorkflowOrchestrator = Depends(get_orchestrator)
) -> TransitionOut:
    project_id = await orch.project_id_for_token(token)
    return (await orch.submit_review(project_id, request_id=_rid(request))).to_dict()


@router.post("/review/{token}/approve", response_model=TransitionOut)
async def api_review_approve(
    request: Request, token: str = Path(...), orch: WorkflowOrchestrator = Depends(get_orchestrator)
) -> TransitionOut:
    project_id = await orch.project_id_for_token(token)
    return (await orch.approve(project_id, actor="customer", request_id=_rid(request))).to_dict()


@router.patch("/review/{token}/characters/{character_id}/feedback", response_model=CharacterReviewOut)
async def api_review_character_feedback(
    body: FeedbackIn,
    token: str = Path(...),
    character_id: str = Path(...),
    orch: WorkflowOrchestrator = Depends(get_orchestrator),
) -> CharacterReviewOut:
    project_id = await orch.project_id_for_token(token)
    return character_review(await orch.submit_feedback(Target.CHARACTERS, character_id, body.note, project_id=project_id))


@router.patch("/review/{token}/pages/{page_id}/feedback", response_model=StoryPageReviewOut)
async def api_review_page_feedback(
    body: FeedbackIn,
    token: str = Path(...),
    page_id: str = Path(...),
    orch: WorkflowOrchestrator = Depends(get_orchestrator),
) -> StoryPageReviewOut:
    project_id = await orch.project_id_for_token(token)
    return page_review(await orch.submit_feedback(Target.PAGES, page_id, body.note, project_id=project_id))


@router.post("/review/{token}/pages/{page_id}/follow-up", response_model=StoryPageReviewOut)
async def api_review_follow_up(
    request: Request,
    body: FeedbackIn,
    token: str = Path(...),
    page_id: str = Path(...),
    orch: WorkflowOrchestrator = Depends(get_orchestrator),
) -> StoryPageReviewOut:
    project_id = await orch.project_id_for_token(token)
    return page_review(await orch.follow_up(page_id, body.note, project_id=project_id, request_id=_rid(request)))


@router.post("/review/{token}/pages/{page_id}/accept-reply", response_model=StoryPageReviewOut)
async def api_review_accept_reply(
    token: str = Path(...), page_id: str = Path(...), orch: WorkflowOrchestrator = Depends(get_orchestrator)
) -> StoryPageReviewOut:
    project_id = await orch.project_id_for_token(token)
    return page_review(await orch.accept_reply(page_id, project_id=project_id))
