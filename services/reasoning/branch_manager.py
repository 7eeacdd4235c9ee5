"""
Branch Manager

A branch is a label on thoughts: it records which thought it forked from,
and every thought stamped with its token belongs to it.
"""
import uuid
from typing import Optional

from domain.sequence_domain_service import SequenceDomainService
from logging_config import get_logger
from models import ThinkingBranch
from reasoning_config import BRANCH_DESCRIPTION_CLIP

logger = get_logger(__name__)


def new_branch_token() -> str:
    return f"branch-{uuid.uuid4().hex[:12]}"


class BranchManager:

    async def create_branch(
        self,
        uow,
        sequence_id: int,
        content: str,
        thought_number: int,
        name: Optional[str] = None
    ) -> Optional[ThinkingBranch]:
        """
        Fork from the most recent thought of the sequence.

        Returns None when the sequence has no thoughts yet; the new thought
        then goes on the trunk.
        """
        origin = await uow.thoughts.most_recent(uow.session, sequence_id)
        if origin is None:
            logger.info("branch_skipped_empty_sequence", sequence_id=sequence_id)
            return None

        branch = ThinkingBranch(
            sequence_id=sequence_id,
            branch_id=new_branch_token(),
            branch_name=name or SequenceDomainService.default_branch_name(thought_number),
            branch_from_thought_id=origin.id,
            description=f"Alternative approach: {content[:BRANCH_DESCRIPTION_CLIP]}...",
            rationale=content,
            is_active=True,
            is_merged=False,
        )
        await uow.branches.add(uow.session, branch)

        logger.info(
            "branch_created",
            sequence_id=sequence_id,
            branch_id=branch.branch_id,
            branch_name=branch.branch_name,
            from_thought_id=origin.id,
            from_thought_number=origin.thought_number,
        )
        return branch

    async def find_active_branch(self, uow, sequence_id: int, branch_name: Optional[str]) -> Optional[ThinkingBranch]:
        if not branch_name:
            return None
        return await uow.branches.find_active(uow.session, sequence_id, branch_name)
