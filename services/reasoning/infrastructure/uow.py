"""
Unit of Work + Repositories - Infrastructure Layer
==================================================

The Sequence Store. Repositories are stateless CRUD helpers that take the
session of the surrounding UnitOfWork; the UnitOfWork owns the transaction
boundary and translates driver errors into StorageError.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, select, update, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.sequence_domain_service import SequenceState
from exceptions import StorageError
from logging_config import get_logger

logger = get_logger(__name__)


class UnitOfWork:
    """
    Thin Unit of Work for transaction management.

    Usage:
        async with UnitOfWork(session_factory, operation="append_thought") as uow:
            snapshot = await uow.sequences.get_snapshot(uow.session, sequence_id, lock=True)
            ...
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], operation: str = "unit_of_work"):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self.operation = operation

        self.projects = ProjectRepository()
        self.reasoning_sessions = SessionRepository()
        self.sequences = SequenceRepository()
        self.thoughts = ThoughtRepository()
        self.branches = BranchRepository()
        self.memories = MemoryRepository()
        self.insight_queue = InsightQueueRepository()

    async def __aenter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit or rollback, then close. Driver errors surface as StorageError."""
        try:
            if exc_type is None:
                try:
                    await self._session.commit()
                except SQLAlchemyError as e:
                    await self._session.rollback()
                    logger.error("uow_commit_failed", operation=self.operation, error=str(e))
                    raise StorageError(self.operation, e) from e
            else:
                await self._session.rollback()
                if issubclass(exc_type, SQLAlchemyError):
                    logger.error("uow_storage_error", operation=self.operation, error=str(exc_val))
                    raise StorageError(self.operation, exc_val) from exc_val
        finally:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError(
                "Session not available. Use 'async with UnitOfWork(...) as uow:' pattern."
            )
        return self._session


@dataclass
class SequenceSnapshot:
    """A sequence plus its thought statistics, read in one round trip."""
    sequence: "ThinkingSequence"
    thought_count: int
    max_thought_number: Optional[int]
    max_total_thoughts: Optional[int]


class ProjectRepository:
    """Projects - CRUD only"""

    async def get_by_name(self, session, name: str) -> "Project":
        from models import Project

        result = await session.execute(select(Project).where(Project.name == name))
        return result.scalar_one_or_none()

    async def get(self, session, project_id: int) -> "Project":
        from models import Project

        return await session.get(Project, project_id)

    async def save(self, session, project) -> None:
        """add + flush to get the generated ID"""
        session.add(project)
        await session.flush()


class SessionRepository:
    """Reasoning sessions - CRUD only"""

    async def get_by_name(self, session, project_id: int, session_name: str) -> "ReasoningSession":
        from models import ReasoningSession

        stmt = select(ReasoningSession).where(
            ReasoningSession.project_id == project_id,
            ReasoningSession.session_name == session_name,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def save(self, session, reasoning_session) -> None:
        session.add(reasoning_session)
        await session.flush()


class SequenceRepository:
    """Thinking sequences"""

    async def get(self, session, sequence_id: int) -> "ThinkingSequence":
        from models import ThinkingSequence

        return await session.get(ThinkingSequence, sequence_id)

    async def get_snapshot(self, session, sequence_id: int, lock: bool = False) -> Optional[SequenceSnapshot]:
        """
        Sequence + thought count + max thought_number + max total_thoughts.

        With lock=True the sequence row is held with SELECT ... FOR UPDATE
        (ignored by backends without row locks).
        """
        from models import ThinkingSequence, Thought

        def _stat(expr):
            return (
                select(expr)
                .where(Thought.sequence_id == ThinkingSequence.id)
                .correlate(ThinkingSequence)
                .scalar_subquery()
            )

        stmt = select(
            ThinkingSequence,
            _stat(func.count(Thought.id)).label("thought_count"),
            _stat(func.max(Thought.thought_number)).label("max_thought_number"),
            _stat(func.max(Thought.total_thoughts)).label("max_total_thoughts"),
        ).where(ThinkingSequence.id == sequence_id)

        if lock:
            stmt = stmt.with_for_update(of=ThinkingSequence)

        row = (await session.execute(stmt)).one_or_none()
        if row is None:
            return None

        return SequenceSnapshot(
            sequence=row[0],
            thought_count=row.thought_count or 0,
            max_thought_number=row.max_thought_number,
            max_total_thoughts=row.max_total_thoughts,
        )

    async def save(self, session, sequence) -> None:
        session.add(sequence)
        await session.flush()

    async def touch(self, session, sequence) -> None:
        from models import _utcnow

        sequence.updated_at = _utcnow()
        await session.flush()

    async def mark_complete(self, session, sequence_id: int, summary: Optional[str]) -> bool:
        """
        Conditional UPDATE ... WHERE state = 'active'.

        Returns False when no row changed (missing or already complete).
        """
        from models import ThinkingSequence, _utcnow

        stmt = (
            update(ThinkingSequence)
            .where(
                ThinkingSequence.id == sequence_id,
                ThinkingSequence._state == SequenceState.ACTIVE.value,
            )
            .values({
                ThinkingSequence._state: SequenceState.COMPLETE.value,
                ThinkingSequence.completion_summary: summary,
                ThinkingSequence.updated_at: _utcnow(),
            })
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def project_name(self, session, sequence_id: int) -> Optional[str]:
        from models import Project, ThinkingSequence

        stmt = (
            select(Project.name)
            .join(ThinkingSequence, ThinkingSequence.project_id == Project.id)
            .where(ThinkingSequence.id == sequence_id)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    def _with_stats(self):
        from models import Project, ThinkingSequence, Thought

        thought_count = (
            select(func.count(Thought.id))
            .where(Thought.sequence_id == ThinkingSequence.id)
            .correlate(ThinkingSequence)
            .scalar_subquery()
        )
        latest_number = (
            select(func.max(Thought.thought_number))
            .where(Thought.sequence_id == ThinkingSequence.id)
            .correlate(ThinkingSequence)
            .scalar_subquery()
        )
        return (
            select(
                ThinkingSequence,
                Project.name.label("project_name"),
                thought_count.label("thought_count"),
                latest_number.label("latest_thought_number"),
            )
            .join(Project, Project.id == ThinkingSequence.project_id)
        )

    async def list_for_project(self, session, project_id: int, include_completed: bool = True) -> list:
        from models import ThinkingSequence

        stmt = self._with_stats().where(ThinkingSequence.project_id == project_id)
        if not include_completed:
            stmt = stmt.where(ThinkingSequence._state == SequenceState.ACTIVE.value)
        stmt = stmt.order_by(ThinkingSequence.updated_at.desc(), ThinkingSequence.id.desc())
        return list((await session.execute(stmt)).all())

    async def search(
        self,
        session,
        query: str,
        project_id: Optional[int] = None,
        include_completed: bool = True,
        limit: int = 20
    ) -> list:
        """Case-insensitive substring match on name, description, goal and thought content."""
        from models import ThinkingSequence, Thought

        pattern = f"%{query}%"
        matching_thought = (
            select(Thought.id)
            .where(Thought.sequence_id == ThinkingSequence.id, Thought.content.ilike(pattern))
            .correlate(ThinkingSequence)
            .exists()
        )
        stmt = self._with_stats().where(
            or_(
                ThinkingSequence.sequence_name.ilike(pattern),
                ThinkingSequence.description.ilike(pattern),
                ThinkingSequence.goal.ilike(pattern),
                matching_thought,
            )
        )
        if project_id is not None:
            stmt = stmt.where(ThinkingSequence.project_id == project_id)
        if not include_completed:
            stmt = stmt.where(ThinkingSequence._state == SequenceState.ACTIVE.value)
        stmt = stmt.order_by(ThinkingSequence.updated_at.desc(), ThinkingSequence.id.desc()).limit(limit)
        return list((await session.execute(stmt)).all())


class ThoughtRepository:
    """Thoughts - append-only; rows are never updated"""

    async def get(self, session, thought_id: int) -> "Thought":
        from models import Thought

        return await session.get(Thought, thought_id)

    async def add(self, session, thought) -> None:
        session.add(thought)
        await session.flush()

    async def most_recent(self, session, sequence_id: int) -> "Thought":
        """Highest thought_number (then latest revision) in the sequence."""
        from models import Thought

        stmt = (
            select(Thought)
            .where(Thought.sequence_id == sequence_id)
            .order_by(Thought.thought_number.desc(), Thought.revision_number.desc())
            .limit(1)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def max_revision(self, session, sequence_id: int, thought_number: int) -> int:
        from models import Thought

        stmt = select(func.max(Thought.revision_number)).where(
            Thought.sequence_id == sequence_id,
            Thought.thought_number == thought_number,
        )
        return (await session.execute(stmt)).scalar_one_or_none() or 0

    async def list_for_sequence(self, session, sequence_id: int) -> list:
        """All rows (trunk + branches + revisions) ordered by number, revision."""
        from models import Thought

        stmt = (
            select(Thought)
            .where(Thought.sequence_id == sequence_id)
            .order_by(Thought.thought_number, Thought.revision_number)
        )
        return list((await session.execute(stmt)).scalars().all())


class BranchRepository:
    """Thinking branches"""

    async def add(self, session, branch) -> None:
        session.add(branch)
        await session.flush()

    async def find_active(self, session, sequence_id: int, name_or_token: str) -> "ThinkingBranch":
        from models import ThinkingBranch

        stmt = (
            select(ThinkingBranch)
            .where(
                ThinkingBranch.sequence_id == sequence_id,
                ThinkingBranch.is_active.is_(True),
                or_(
                    ThinkingBranch.branch_name == name_or_token,
                    ThinkingBranch.branch_id == name_or_token,
                ),
            )
            .order_by(ThinkingBranch.id.desc())
            .limit(1)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def list_for_sequence(self, session, sequence_id: int) -> list:
        from models import ThinkingBranch

        stmt = (
            select(ThinkingBranch)
            .where(ThinkingBranch.sequence_id == sequence_id)
            .order_by(ThinkingBranch.created_at, ThinkingBranch.id)
        )
        return list((await session.execute(stmt)).scalars().all())

    async def names_for_sequence(self, session, sequence_id: int) -> dict:
        """branch token -> branch name"""
        return {b.branch_id: b.branch_name for b in await self.list_for_sequence(session, sequence_id)}


class MemoryRepository:
    """Decision memories"""

    async def save(self, session, memory) -> None:
        session.add(memory)
        await session.flush()


class InsightQueueRepository:
    """Insight processing outbox"""

    async def save(self, session, entry) -> None:
        session.add(entry)
        await session.flush()

    async def get_for_update(self, session, entry_id: int) -> "InsightQueueEntry":
        from models import InsightQueueEntry

        stmt = select(InsightQueueEntry).where(InsightQueueEntry.id == entry_id).with_for_update()
        return (await session.execute(stmt)).scalar_one_or_none()

    async def relayable(self, session, created_before: datetime, attempted_before: datetime, limit: int) -> list:
        """Never-attempted rows past the grace period, plus abandoned attempts."""
        from models import InsightQueueEntry

        stmt = (
            select(InsightQueueEntry.id)
            .where(or_(
                and_(
                    InsightQueueEntry.status == "pending",
                    InsightQueueEntry.started_at.is_(None),
                    InsightQueueEntry.created_at <= created_before,
                ),
                and_(
                    InsightQueueEntry.status.in_(("pending", "processing")),
                    InsightQueueEntry.started_at <= attempted_before,
                ),
            ))
            .order_by(InsightQueueEntry.task_priority.desc(), InsightQueueEntry.id)
            .limit(limit)
        )
        return list((await session.execute(stmt)).scalars().all())
