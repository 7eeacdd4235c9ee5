"""
THOUGHT APPEND ENGINE
=====================

append(): one transaction that reads the sequence under a row lock,
optionally forks a branch, writes the thought and, for a conclusion,
marks the sequence complete. Side effects of completion run after commit.

revise(): appends a new revision row for an existing thought number.
Rows are never updated; the latest revision of a number wins on render.
"""
from datetime import datetime, timezone
from typing import Optional

from branch_manager import BranchManager
from conclusion_finalizer import ConclusionFinalizer
from database import AsyncSessionLocal
from domain.sequence_domain_service import (
    ConclusionDetector,
    SequenceDomainService,
    render_transcript,
)
from exceptions import SequenceAlreadyComplete, SequenceNotFound, ThoughtLimitExceeded, ThoughtNotFound
from infrastructure.uow import UnitOfWork
from logging_config import get_logger
from models import Thought
from reasoning_config import CONCLUSION_POLICY, CONFIDENCE, MAX_THOUGHTS
from thought_type_normalizer import normalize_thought_type

logger = get_logger(__name__)


class ThoughtAppendService:

    def __init__(
        self,
        session_factory=None,
        finalizer: Optional[ConclusionFinalizer] = None,
        detector: Optional[ConclusionDetector] = None,
        branches: Optional[BranchManager] = None,
        max_thoughts: int = MAX_THOUGHTS
    ):
        self._session_factory = session_factory or AsyncSessionLocal
        self._finalizer = finalizer or ConclusionFinalizer(self._session_factory)
        self._detector = detector or ConclusionDetector(CONCLUSION_POLICY)
        self._branches = branches or BranchManager()
        self._domain = SequenceDomainService()
        self._max_thoughts = max_thoughts

    async def append(
        self,
        sequence_id: int,
        content: str,
        thought_type: Optional[str] = None,
        branch_name: Optional[str] = None
    ) -> dict:
        """
        Append one thought to an active sequence.

        Raises:
            SequenceNotFound: no such sequence
            BlankInput: content is empty or whitespace
            SequenceAlreadyComplete: sequence is terminal; start a new one
            ThoughtLimitExceeded: sequence is full
            StorageError: persistence failed, nothing was written
        """
        self._domain.require_text("content", content)
        normalized = normalize_thought_type(thought_type)

        async with UnitOfWork(self._session_factory, operation="append_thought") as uow:
            snapshot = await uow.sequences.get_snapshot(uow.session, sequence_id, lock=True)
            if snapshot is None:
                raise SequenceNotFound(sequence_id)

            sequence = snapshot.sequence
            if not self._domain.can_append(sequence.state):
                logger.warning("append_rejected_sequence_complete", sequence_id=sequence_id)
                raise SequenceAlreadyComplete(sequence_id)

            thought_number = self._domain.next_thought_number(snapshot.max_thought_number)
            if thought_number > self._max_thoughts:
                raise ThoughtLimitExceeded(sequence_id, self._max_thoughts)

            branch = None
            branch_created = False
            if normalized.is_branch_intent:
                branch = await self._branches.create_branch(
                    uow, sequence_id, content, thought_number, name=branch_name
                )
                branch_created = branch is not None
            elif branch_name:
                branch = await self._branches.find_active_branch(uow, sequence_id, branch_name)

            completion_reason = self._detector.detect(normalized.thought_type, content)
            is_conclusion = completion_reason is not None

            metadata = {}
            if normalized.original_label and normalized.original_label != normalized.thought_type:
                metadata["original_type"] = normalized.original_label
            if normalized.is_branch_intent:
                metadata["branch_intent"] = normalized.branch_intent

            thought = Thought(
                sequence_id=sequence_id,
                thought_number=thought_number,
                revision_number=0,
                total_thoughts=self._domain.estimate_total(thought_number, snapshot.max_total_thoughts),
                content=content,
                thought_type=normalized.thought_type,
                confidence_level=self._domain.confidence_for(is_conclusion),
                next_thought_needed=not is_conclusion,
                is_revision=False,
                branch_from_thought_id=branch.branch_from_thought_id if branch_created else None,
                branch_id=branch.branch_id if branch else None,
                metadata_=metadata,
            )
            await uow.thoughts.add(uow.session, thought)

            if is_conclusion:
                await self._finalizer.mark_complete(uow, sequence_id, content, completion_reason)
            else:
                await uow.sequences.touch(uow.session, sequence)

            transcript = await self._render(uow, sequence)
            thought_id = thought.id
            branch_id = thought.branch_id

        logger.info(
            "thought_appended",
            sequence_id=sequence_id,
            thought_id=thought_id,
            thought_number=thought_number,
            thought_type=normalized.thought_type,
            branch_id=branch_id,
            branch_created=branch_created,
            is_conclusion=is_conclusion,
        )

        if is_conclusion:
            await self._finalizer.run_side_effects(sequence_id)

        return {
            "sequence_id": sequence_id,
            "content": transcript,
            "is_complete": is_conclusion,
            "branch_created": branch_created,
            "thought_id": thought_id,
            "thought_number": thought_number,
            "thought_type": normalized.thought_type,
            "branch_id": branch_id,
        }

    async def revise(
        self,
        thought_id: int,
        new_content: str,
        reason: Optional[str] = None,
        confidence_level: Optional[float] = None
    ) -> dict:
        """
        Append a revision of an existing thought.

        A revision keeps the number, type and branch of the original and
        never completes the sequence.
        """
        self._domain.require_text("content", new_content)

        async with UnitOfWork(self._session_factory, operation="revise_thought") as uow:
            original = await uow.thoughts.get(uow.session, thought_id)
            if original is None:
                raise ThoughtNotFound(thought_id)

            snapshot = await uow.sequences.get_snapshot(uow.session, original.sequence_id, lock=True)
            sequence = snapshot.sequence
            if not self._domain.can_append(sequence.state):
                logger.warning("revise_rejected_sequence_complete", sequence_id=sequence.id, thought_id=thought_id)
                raise SequenceAlreadyComplete(sequence.id)

            revision_number = await uow.thoughts.max_revision(
                uow.session, original.sequence_id, original.thought_number
            ) + 1

            revised = Thought(
                sequence_id=original.sequence_id,
                thought_number=original.thought_number,
                revision_number=revision_number,
                total_thoughts=original.total_thoughts,
                content=new_content,
                thought_type=original.thought_type,
                confidence_level=CONFIDENCE["default"] if confidence_level is None else confidence_level,
                next_thought_needed=original.next_thought_needed,
                is_revision=True,
                revises_thought_id=original.id,
                branch_id=original.branch_id,
                metadata_={
                    "revision_reason": reason,
                    "original_thought_id": original.id,
                    "original_content": original.content,
                    "revised_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            await uow.thoughts.add(uow.session, revised)
            await uow.sequences.touch(uow.session, sequence)

            transcript = await self._render(uow, sequence)
            result = {
                "sequence_id": original.sequence_id,
                "thought_id": revised.id,
                "revises_thought_id": original.id,
                "thought_number": revised.thought_number,
                "revision_number": revision_number,
                "thought_type": revised.thought_type,
                "confidence_level": revised.confidence_level,
                "content": transcript,
                "is_complete": False,
            }

        logger.info(
            "thought_revised",
            sequence_id=result["sequence_id"],
            thought_id=result["thought_id"],
            revises_thought_id=thought_id,
            revision_number=revision_number,
            reason=reason,
        )
        return result

    async def _render(self, uow: UnitOfWork, sequence) -> str:
        thoughts = await uow.thoughts.list_for_sequence(uow.session, sequence.id)
        branch_names = await uow.branches.names_for_sequence(uow.session, sequence.id)
        return render_transcript(sequence.sequence_name, sequence.goal, thoughts, branch_names)
