"""
Sequence Lifecycle Manager - start and explicit completion of sequences.
"""
from typing import Optional

from conclusion_finalizer import ConclusionFinalizer
from database import AsyncSessionLocal
from domain.sequence_domain_service import CompletionReason, SequenceDomainService, SequenceState
from exceptions import SequenceAlreadyComplete, SequenceNotFound
from infrastructure.uow import UnitOfWork
from logging_config import get_logger
from models import ThinkingSequence
from project_resolver import dated_session_name, get_or_create_project, get_or_create_session
from reasoning_config import SEQUENCE_NAME_PREFIX, SESSION_TYPE
from sequence_export import generate_summary

logger = get_logger(__name__)


class SequenceLifecycleService:

    def __init__(self, session_factory=None, finalizer: Optional[ConclusionFinalizer] = None):
        self._session_factory = session_factory or AsyncSessionLocal
        self._finalizer = finalizer or ConclusionFinalizer(self._session_factory)

    async def start(self, goal: str, project_name: str) -> dict:
        """
        Open a new active sequence for `goal` under `project_name`.

        The project and today's reasoning session are created on demand.
        """
        SequenceDomainService.require_text("goal", goal)
        SequenceDomainService.require_text("project_name", project_name)

        async with UnitOfWork(self._session_factory, operation="start_sequence") as uow:
            project = await get_or_create_project(uow, project_name)
            reasoning_session = await get_or_create_session(
                uow, project.id, dated_session_name(), session_type=SESSION_TYPE
            )

            sequence = ThinkingSequence(
                project_id=project.id,
                session_id=reasoning_session.id,
                sequence_name=f"{SEQUENCE_NAME_PREFIX}{goal}",
                description=goal,
                goal=goal,
                _state=SequenceState.ACTIVE.value,
                metadata_={},
            )
            await uow.sequences.save(uow.session, sequence)
            sequence_id = sequence.id

        logger.info(
            "sequence_started",
            sequence_id=sequence_id,
            project_name=project_name,
            goal=goal,
        )
        return {"sequence_id": sequence_id, "goal": goal}

    async def complete(self, sequence_id: int, summary: Optional[str] = None) -> dict:
        """
        Explicitly conclude a sequence. Without a summary one is generated
        from the trunk thoughts.
        """
        if summary is None:
            async with UnitOfWork(self._session_factory, operation="summarize_sequence") as uow:
                sequence = await uow.sequences.get(uow.session, sequence_id)
                if sequence is None:
                    raise SequenceNotFound(sequence_id)
                if sequence.is_complete:
                    raise SequenceAlreadyComplete(sequence_id)

                thoughts = await uow.thoughts.list_for_sequence(uow.session, sequence_id)
                summary = generate_summary(sequence.sequence_name, sequence.goal, thoughts)

        result = await self._finalizer.finalize(
            sequence_id, summary, reason=CompletionReason.EXPLICIT_COMPLETE
        )
        logger.info("sequence_completed", sequence_id=sequence_id, summary=summary[:100])
        return result
