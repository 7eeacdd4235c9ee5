from pydantic import BaseModel, Field, StringConstraints
from typing import Annotated, Literal, Optional, List, Dict, Any

# whitespace-only input is rejected at the edge with 422
NonBlankStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# =============================================================================
# Requests
# =============================================================================

class StartReasoningRequest(BaseModel):
    goal: NonBlankStr
    project_name: NonBlankStr


class AddThoughtRequest(BaseModel):
    content: NonBlankStr
    thought_type: Optional[str] = None
    branch_name: Optional[str] = None


class ReviseThoughtRequest(BaseModel):
    content: NonBlankStr
    reason: Optional[str] = None
    confidence_level: Optional[float] = Field(None, ge=0.0, le=1.0)


class CompleteSequenceRequest(BaseModel):
    summary: Optional[str] = None


# =============================================================================
# Results
# =============================================================================

class StartReasoningResult(BaseModel):
    sequence_id: int
    goal: str


class AddThoughtResult(BaseModel):
    sequence_id: int
    content: str
    is_complete: bool
    branch_created: bool
    thought_id: int
    thought_number: int
    thought_type: str
    branch_id: Optional[str] = None


class RevisionResult(BaseModel):
    sequence_id: int
    thought_id: int
    revises_thought_id: int
    thought_number: int
    revision_number: int
    thought_type: str
    confidence_level: float
    content: str
    is_complete: bool = False


class CompletionResult(BaseModel):
    sequence_id: int
    is_complete: bool
    summary: Optional[str] = None
    transitioned_at: Optional[str] = None
    memory_id: Optional[int] = None
    insight_entry_id: Optional[int] = None


# =============================================================================
# Views
# =============================================================================

class ThoughtView(BaseModel):
    id: int
    sequence_id: int
    thought_number: int
    revision_number: int
    total_thoughts: int
    content: str
    thought_type: str
    confidence_level: float
    next_thought_needed: bool
    is_revision: bool
    revises_thought_id: Optional[int] = None
    branch_from_thought_id: Optional[int] = None
    branch_id: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: Optional[str] = None


class BranchView(BaseModel):
    id: int
    sequence_id: int
    branch_id: str
    branch_name: str
    branch_from_thought_id: int
    description: Optional[str] = None
    rationale: Optional[str] = None
    is_active: bool
    is_merged: bool
    merge_summary: Optional[str] = None
    created_at: Optional[str] = None


class Progress(BaseModel):
    completed: int
    total: int
    percentage: int
    current_phase: Literal["starting", "exploring", "analyzing", "synthesizing", "concluding"]
    branch_count: int = 0
    revision_count: int = 0


class SequenceView(BaseModel):
    id: int
    project_id: int
    session_id: int
    project_name: Optional[str] = None
    sequence_name: str
    description: Optional[str] = None
    goal: Optional[str] = None
    state: Literal["active", "complete"]
    is_complete: bool
    completion_summary: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    thoughts: List[ThoughtView] = []
    branches: List[BranchView] = []
    progress: Progress


class SequenceListing(BaseModel):
    id: int
    sequence_name: str
    description: Optional[str] = None
    goal: Optional[str] = None
    state: Literal["active", "complete"]
    is_complete: bool
    project_name: str
    thought_count: int
    latest_thought_number: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ExportResult(BaseModel):
    sequence_id: int
    format: str
    content: str
