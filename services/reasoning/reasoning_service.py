"""
REASONING SERVICE - exposed interface of the reasoning engine
=============================================================

Wires the lifecycle manager, the append engine, the finalizer, the read
side and the exporter around one session factory, and returns pydantic
results.

Usage:
    service = ReasoningService()
    started = await service.start("Pick a queue backend", "infra")
    result = await service.add_thought(started.sequence_id, "Redis is already deployed")
"""
from typing import Callable, List, Optional

from conclusion_finalizer import ConclusionFinalizer
from database import AsyncSessionLocal
from domain.sequence_domain_service import ConclusionDetector
from insight_queue import InsightQueue
from memory_store import MemoryStore
from reasoning_config import CONCLUSION_POLICY, MAX_THOUGHTS
from schemas import (
    AddThoughtResult,
    CompletionResult,
    RevisionResult,
    SequenceListing,
    SequenceView,
    StartReasoningResult,
)
from sequence_export import SequenceExporter
from sequence_lifecycle_service import SequenceLifecycleService
from sequence_query_service import SequenceQueryService
from thought_append_service import ThoughtAppendService


class ReasoningService:

    def __init__(
        self,
        session_factory=None,
        conclusion_policy: str = CONCLUSION_POLICY,
        max_thoughts: int = MAX_THOUGHTS,
        dispatch: Optional[Callable[[int], None]] = None,
        memory_store: Optional[MemoryStore] = None,
        insight_queue: Optional[InsightQueue] = None
    ):
        factory = session_factory or AsyncSessionLocal

        self.finalizer = ConclusionFinalizer(
            factory,
            memory_store=memory_store or MemoryStore(factory),
            insight_queue=insight_queue or InsightQueue(factory, dispatch=dispatch),
        )
        self.lifecycle = SequenceLifecycleService(factory, finalizer=self.finalizer)
        self.thoughts = ThoughtAppendService(
            factory,
            finalizer=self.finalizer,
            detector=ConclusionDetector(conclusion_policy),
            max_thoughts=max_thoughts,
        )
        self.queries = SequenceQueryService(factory)
        self.exporter = SequenceExporter(self.queries)

    async def start(self, goal: str, project_name: str) -> StartReasoningResult:
        return StartReasoningResult(**await self.lifecycle.start(goal, project_name))

    async def add_thought(
        self,
        sequence_id: int,
        content: str,
        thought_type: Optional[str] = None,
        branch_name: Optional[str] = None
    ) -> AddThoughtResult:
        result = await self.thoughts.append(sequence_id, content, thought_type, branch_name)
        return AddThoughtResult(**result)

    async def revise_thought(
        self,
        thought_id: int,
        content: str,
        reason: Optional[str] = None,
        confidence_level: Optional[float] = None
    ) -> RevisionResult:
        result = await self.thoughts.revise(thought_id, content, reason, confidence_level)
        return RevisionResult(**result)

    async def complete(self, sequence_id: int, summary: Optional[str] = None) -> CompletionResult:
        return CompletionResult(**await self.lifecycle.complete(sequence_id, summary))

    async def get_sequence(
        self,
        sequence_id: int,
        include_branches: bool = True,
        include_revisions: bool = True,
        format: str = "detailed"
    ) -> Optional[SequenceView]:
        view = await self.queries.get_sequence(sequence_id, include_branches, include_revisions, format)
        return SequenceView(**view) if view else None

    async def list_sequences(self, project_name: str, include_completed: bool = True) -> List[SequenceListing]:
        rows = await self.queries.list_sequences(project_name, include_completed)
        return [SequenceListing(**row) for row in rows]

    async def search_sequences(
        self,
        query: str,
        project_name: Optional[str] = None,
        include_completed: bool = True,
        limit: int = 20
    ) -> List[SequenceListing]:
        rows = await self.queries.search_sequences(query, project_name, include_completed, limit)
        return [SequenceListing(**row) for row in rows]

    async def export(self, sequence_id: int, format: str = "markdown") -> str:
        return await self.exporter.export(sequence_id, format)
