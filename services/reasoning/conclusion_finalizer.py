"""
CONCLUSION FINALIZER
====================

The only code path that moves a sequence to `complete`.

mark_complete() is a conditional UPDATE ... WHERE state = 'active' run in
the caller's UnitOfWork, so the branch, the concluding thought and the
completion commit together. Two finalizers racing on one sequence: the
loser sees zero rows changed and gets SequenceAlreadyComplete.

run_side_effects() runs after commit. The decision record and the insight
job are each attempted once, each isolated; a failure is logged and never
touches the completion. If the concluded sequence cannot be read back, the
insight job is still queued with a bare sequence reference and the worker
loads it.
"""
from typing import Optional

from database import AsyncSessionLocal
from domain.sequence_domain_service import (
    CompletionReason,
    SequenceState,
    SequenceTransitioned,
    render_decision,
    sequence_domain_service,
)
from error_handler import ErrorHandler
from exceptions import SequenceAlreadyComplete, SequenceNotFound
from infrastructure.uow import UnitOfWork
from insight_queue import InsightQueue
from logging_config import get_logger, log_sequence_transition
from memory_store import MemoryStore
from reasoning_config import DECISION_MEMORY, INSIGHT_QUEUE

logger = get_logger(__name__)

_LOAD_FAILED = object()


class ConclusionFinalizer:

    def __init__(
        self,
        session_factory=None,
        memory_store: Optional[MemoryStore] = None,
        insight_queue: Optional[InsightQueue] = None
    ):
        self._session_factory = session_factory or AsyncSessionLocal
        self._memory_store = memory_store or MemoryStore(self._session_factory)
        self._insight_queue = insight_queue or InsightQueue(self._session_factory)

    async def mark_complete(
        self,
        uow: UnitOfWork,
        sequence_id: int,
        summary: Optional[str],
        reason: CompletionReason = CompletionReason.EXPLICIT_COMPLETE
    ) -> SequenceTransitioned:
        """
        active -> complete inside the caller's transaction.

        Raises:
            SequenceAlreadyComplete: no active row matched
        """
        changed = await uow.sequences.mark_complete(uow.session, sequence_id, summary)
        if not changed:
            logger.warning("finalize_lost_race", sequence_id=sequence_id)
            raise SequenceAlreadyComplete(sequence_id)

        event = sequence_domain_service.transition(
            sequence_id, SequenceState.ACTIVE.value, SequenceState.COMPLETE, reason.value
        )
        log_sequence_transition(sequence_id, event.from_state, event.to_state, event.reason)
        return event

    async def finalize(
        self,
        sequence_id: int,
        concluding_content: Optional[str],
        reason: CompletionReason = CompletionReason.EXPLICIT_COMPLETE
    ) -> dict:
        """Standalone completion: own transaction, then side effects."""
        async with UnitOfWork(self._session_factory, operation="finalize_sequence") as uow:
            sequence = await uow.sequences.get(uow.session, sequence_id)
            if sequence is None:
                raise SequenceNotFound(sequence_id)
            if sequence.is_complete:
                raise SequenceAlreadyComplete(sequence_id)

            event = await self.mark_complete(uow, sequence_id, concluding_content, reason)

        side_effects = await self.run_side_effects(sequence_id)
        return {
            "sequence_id": sequence_id,
            "is_complete": True,
            "summary": concluding_content,
            "transitioned_at": event.timestamp,
            **side_effects,
        }

    async def run_side_effects(self, sequence_id: int) -> dict:
        """Decision record + insight enqueue. Never raises."""
        results = {"memory_id": None, "insight_entry_id": None}

        conclusion = await ErrorHandler.safe_execute_async(
            load_conclusion(self._session_factory, sequence_id),
            default=_LOAD_FAILED,
            context={"sequence_id": sequence_id, "side_effect": "load_conclusion"}
        )
        if conclusion is None:
            return results

        if conclusion is _LOAD_FAILED:
            # the worker loads the sequence itself from a bare reference
            logger.warning("conclusion_load_failed", sequence_id=sequence_id)
            payload = {"sequence_id": sequence_id, "processing_type": INSIGHT_QUEUE["processing_type"]}
            project_id = None
        else:
            results["memory_id"] = await self._record_decision(sequence_id, conclusion)
            payload = insight_payload(sequence_id, conclusion)
            project_id = conclusion["project_id"]

        results["insight_entry_id"] = await ErrorHandler.safe_execute_async(
            self._insight_queue.enqueue(
                INSIGHT_QUEUE["task_type"],
                [sequence_id],
                payload=payload,
                priority=INSIGHT_QUEUE["priority"],
                project_id=project_id,
            ),
            default=None,
            context={"sequence_id": sequence_id, "side_effect": "insight_enqueue"}
        )

        logger.info("conclusion_side_effects_done", sequence_id=sequence_id, **results)
        return results

    async def _record_decision(self, sequence_id: int, conclusion: dict) -> Optional[int]:
        if conclusion["project_name"] is None:
            logger.warning("decision_project_missing", sequence_id=sequence_id)
            return None

        return await ErrorHandler.safe_execute_async(
            self._memory_store.create_memory(
                content=conclusion["decision"],
                project_name=conclusion["project_name"],
                memory_type=DECISION_MEMORY["memory_type"],
                importance_score=DECISION_MEMORY["importance_score"],
                session_name=DECISION_MEMORY["session_name"],
                session_type=DECISION_MEMORY["session_type"],
                thinking_sequence_id=sequence_id,
                metadata={
                    "goal": conclusion["goal"],
                    "thought_count": len(conclusion["thoughts"]),
                    "sequence_id": sequence_id,
                },
            ),
            default=None,
            context={"sequence_id": sequence_id, "side_effect": "decision_memory"}
        )


async def load_conclusion(session_factory, sequence_id: int) -> Optional[dict]:
    """Everything the side effects need about a concluded sequence, or None if it is gone."""
    async with UnitOfWork(session_factory, operation="load_conclusion") as uow:
        sequence = await uow.sequences.get(uow.session, sequence_id)
        if sequence is None:
            logger.warning("conclusion_sequence_missing", sequence_id=sequence_id)
            return None

        project_name = await uow.sequences.project_name(uow.session, sequence_id)
        thoughts = await uow.thoughts.list_for_sequence(uow.session, sequence_id)
        branch_names = await uow.branches.names_for_sequence(uow.session, sequence_id)

        summary = sequence.completion_summary or ""
        return {
            "project_id": sequence.project_id,
            "project_name": project_name,
            "name": sequence.sequence_name,
            "goal": sequence.goal,
            "summary": summary,
            "decision": render_decision(summary, sequence.goal, thoughts, branch_names),
            "thoughts": [t.to_dict() for t in thoughts],
        }


def insight_payload(sequence_id: int, conclusion: dict) -> dict:
    return {
        "sequence": {
            "id": sequence_id,
            "goal": conclusion["goal"],
            "name": conclusion["name"],
            "summary": conclusion["summary"],
            "thoughts": conclusion["thoughts"],
        },
        "project_name": conclusion["project_name"],
        "thought_count": len(conclusion["thoughts"]),
        "processing_type": INSIGHT_QUEUE["processing_type"],
    }
