"""
Thinking API Endpoints Module

Thin HTTP wrapper over ReasoningService. Domain exceptions map to status
codes through EXCEPTION_TO_STATUS.
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from exceptions import BaseReasoningException, SequenceNotFound, EXCEPTION_TO_STATUS
from reasoning_service import ReasoningService
from schemas import (
    AddThoughtRequest,
    AddThoughtResult,
    CompleteSequenceRequest,
    CompletionResult,
    ExportResult,
    ReviseThoughtRequest,
    RevisionResult,
    SequenceListing,
    SequenceView,
    StartReasoningRequest,
    StartReasoningResult,
)

router = APIRouter(tags=["thinking"])

_service: Optional[ReasoningService] = None


def get_reasoning_service() -> ReasoningService:
    global _service
    if _service is None:
        _service = ReasoningService()
    return _service


def map_exception_to_http(exc: BaseReasoningException) -> HTTPException:
    """
    Map domain exception to HTTP response.

    Returns:
        HTTPException with proper status code and structured error payload
    """
    status_code = EXCEPTION_TO_STATUS.get(type(exc), 500)
    return HTTPException(status_code=status_code, detail=exc.to_dict())


ERROR_RESPONSES = {
    404: {"model": dict, "description": "Sequence or thought not found"},
    409: {"model": dict, "description": "Sequence already completed"},
    503: {"model": dict, "description": "Storage unavailable"},
}


@router.post("/thinking/start", response_model=StartReasoningResult, responses=ERROR_RESPONSES)
async def start_reasoning(
    payload: StartReasoningRequest,
    service: ReasoningService = Depends(get_reasoning_service)
):
    """Open a new reasoning sequence for a goal"""
    try:
        return await service.start(payload.goal, payload.project_name)
    except BaseReasoningException as e:
        raise map_exception_to_http(e)


@router.get("/thinking/search", response_model=List[SequenceListing], responses=ERROR_RESPONSES)
async def search_sequences(
    q: str = Query(..., min_length=1),
    project_name: Optional[str] = None,
    include_completed: bool = True,
    limit: int = Query(20, ge=1, le=100),
    service: ReasoningService = Depends(get_reasoning_service)
):
    """Case-insensitive substring search over sequences and their thoughts"""
    try:
        return await service.search_sequences(q, project_name, include_completed, limit)
    except BaseReasoningException as e:
        raise map_exception_to_http(e)


@router.post("/thinking/thoughts/{thought_id}/revise", response_model=RevisionResult, responses=ERROR_RESPONSES)
async def revise_thought(
    thought_id: int,
    payload: ReviseThoughtRequest,
    service: ReasoningService = Depends(get_reasoning_service)
):
    """Append a revision of an existing thought"""
    try:
        return await service.revise_thought(
            thought_id, payload.content, payload.reason, payload.confidence_level
        )
    except BaseReasoningException as e:
        raise map_exception_to_http(e)


@router.post(
    "/thinking/{sequence_id}/thoughts",
    response_model=AddThoughtResult,
    responses={**ERROR_RESPONSES, 422: {"model": dict, "description": "Thought limit exceeded"}},
)
async def add_thought(
    sequence_id: int,
    payload: AddThoughtRequest,
    service: ReasoningService = Depends(get_reasoning_service)
):
    """
    Append a thought.

    A conclusion (by type, or by phrasing under the heuristic policy)
    completes the sequence; later appends return 409.
    """
    try:
        return await service.add_thought(
            sequence_id, payload.content, payload.thought_type, payload.branch_name
        )
    except BaseReasoningException as e:
        raise map_exception_to_http(e)


@router.post("/thinking/{sequence_id}/complete", response_model=CompletionResult, responses=ERROR_RESPONSES)
async def complete_sequence(
    sequence_id: int,
    payload: Optional[CompleteSequenceRequest] = None,
    service: ReasoningService = Depends(get_reasoning_service)
):
    """Explicitly conclude a sequence; a summary is generated when omitted"""
    try:
        return await service.complete(sequence_id, payload.summary if payload else None)
    except BaseReasoningException as e:
        raise map_exception_to_http(e)


@router.get("/thinking/{sequence_id}/export", response_model=ExportResult, responses=ERROR_RESPONSES)
async def export_sequence(
    sequence_id: int,
    format: str = "markdown",
    service: ReasoningService = Depends(get_reasoning_service)
):
    try:
        content = await service.export(sequence_id, format)
    except BaseReasoningException as e:
        raise map_exception_to_http(e)
    return ExportResult(sequence_id=sequence_id, format=format.lower(), content=content)


@router.get("/thinking/{sequence_id}", response_model=SequenceView, responses=ERROR_RESPONSES)
async def get_sequence(
    sequence_id: int,
    include_branches: bool = True,
    include_revisions: bool = True,
    format: Literal["detailed", "summary", "linear"] = "detailed",
    service: ReasoningService = Depends(get_reasoning_service)
):
    try:
        view = await service.get_sequence(sequence_id, include_branches, include_revisions, format)
    except BaseReasoningException as e:
        raise map_exception_to_http(e)
    if view is None:
        raise map_exception_to_http(SequenceNotFound(sequence_id))
    return view


@router.get("/projects/{project_name}/thinking", response_model=List[SequenceListing], responses=ERROR_RESPONSES)
async def list_sequences(
    project_name: str,
    include_completed: bool = True,
    service: ReasoningService = Depends(get_reasoning_service)
):
    try:
        return await service.list_sequences(project_name, include_completed)
    except BaseReasoningException as e:
        raise map_exception_to_http(e)
