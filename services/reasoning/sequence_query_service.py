"""
Read side for reasoning sequences: get / list / search / progress.
"""
from typing import List, Optional

from database import AsyncSessionLocal
from domain.sequence_domain_service import is_trunk
from infrastructure.uow import UnitOfWork
from logging_config import get_logger
from reasoning_config import CONFIDENCE, PROGRESS_PHASES

logger = get_logger(__name__)

SEQUENCE_FORMATS = ("detailed", "summary", "linear")


def current_phase(percentage: int) -> str:
    for threshold, phase in PROGRESS_PHASES:
        if percentage >= threshold:
            return phase
    return PROGRESS_PHASES[-1][1]


def calculate_progress(thoughts: List[dict], branch_count: int) -> dict:
    """
    Progress of the trunk: latest thought number against the running
    total_thoughts estimate.
    """
    trunk = [t for t in thoughts if is_trunk(t["branch_id"])]
    revision_count = sum(1 for t in thoughts if t["is_revision"])

    if not trunk:
        return {
            "completed": 0,
            "total": 1,
            "percentage": 0,
            "current_phase": "starting",
            "branch_count": branch_count,
            "revision_count": revision_count,
        }

    latest = max(t["thought_number"] for t in trunk)
    estimated_total = max(t["total_thoughts"] for t in trunk)
    percentage = min(100, int(latest * 100 / estimated_total + 0.5))

    return {
        "completed": latest,
        "total": estimated_total,
        "percentage": percentage,
        "current_phase": current_phase(percentage),
        "branch_count": branch_count,
        "revision_count": revision_count,
    }


def _select_thoughts(thoughts: List[dict], include_branches: bool, include_revisions: bool, fmt: str) -> List[dict]:
    selected = thoughts
    if not include_branches:
        selected = [t for t in selected if is_trunk(t["branch_id"])]
    if not include_revisions:
        selected = [t for t in selected if not t["is_revision"]]

    if fmt == "linear":
        selected = [t for t in selected if is_trunk(t["branch_id"])]
    elif fmt == "summary":
        selected = [
            t for t in selected
            if t["thought_type"] == "conclusion"
            or t["confidence_level"] >= CONFIDENCE["high_confidence_threshold"]
        ]

    return sorted(selected, key=lambda t: (t["thought_number"], t["revision_number"]))


def _listing_row(row) -> dict:
    sequence = row[0]
    return {
        "id": sequence.id,
        "sequence_name": sequence.sequence_name,
        "description": sequence.description,
        "goal": sequence.goal,
        "state": sequence.state,
        "is_complete": sequence.is_complete,
        "project_name": row.project_name,
        "thought_count": row.thought_count or 0,
        "latest_thought_number": row.latest_thought_number,
        "created_at": sequence.created_at.isoformat() if sequence.created_at else None,
        "updated_at": sequence.updated_at.isoformat() if sequence.updated_at else None,
    }


class SequenceQueryService:

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or AsyncSessionLocal

    async def get_sequence(
        self,
        sequence_id: int,
        include_branches: bool = True,
        include_revisions: bool = True,
        format: str = "detailed"
    ) -> Optional[dict]:
        """
        Full view of a sequence with thoughts, branches and progress.

        format:
            detailed - every selected row
            linear   - trunk only
            summary  - conclusions and high-confidence thoughts
        Returns None when the sequence does not exist.
        """
        if format not in SEQUENCE_FORMATS:
            raise ValueError(f"Unknown sequence format: {format}. Expected one of {SEQUENCE_FORMATS}")

        async with UnitOfWork(self._session_factory, operation="get_sequence") as uow:
            sequence = await uow.sequences.get(uow.session, sequence_id)
            if sequence is None:
                return None

            project_name = await uow.sequences.project_name(uow.session, sequence_id)
            thoughts = [t.to_dict() for t in await uow.thoughts.list_for_sequence(uow.session, sequence_id)]
            branches = [b.to_dict() for b in await uow.branches.list_for_sequence(uow.session, sequence_id)]
            view = sequence.to_dict()

        view["project_name"] = project_name
        view["thoughts"] = _select_thoughts(thoughts, include_branches, include_revisions, format)
        view["branches"] = branches if include_branches else []
        view["progress"] = calculate_progress(thoughts, len(branches))
        return view

    async def list_sequences(self, project_name: str, include_completed: bool = True) -> List[dict]:
        async with UnitOfWork(self._session_factory, operation="list_sequences") as uow:
            project = await uow.projects.get_by_name(uow.session, project_name)
            if project is None:
                logger.info("list_sequences_unknown_project", project_name=project_name)
                return []

            rows = await uow.sequences.list_for_project(uow.session, project.id, include_completed)
            return [_listing_row(row) for row in rows]

    async def search_sequences(
        self,
        query: str,
        project_name: Optional[str] = None,
        include_completed: bool = True,
        limit: int = 20
    ) -> List[dict]:
        async with UnitOfWork(self._session_factory, operation="search_sequences") as uow:
            project_id = None
            if project_name:
                project = await uow.projects.get_by_name(uow.session, project_name)
                if project is None:
                    return []
                project_id = project.id

            rows = await uow.sequences.search(
                uow.session, query, project_id=project_id,
                include_completed=include_completed, limit=limit
            )
            results = [_listing_row(row) for row in rows]

        logger.info("sequences_searched", query=query, project_name=project_name, results=len(results))
        return results
