from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Text, Float, Integer, JSON, Boolean,
    UniqueConstraint, CheckConstraint, Index,
)
from sqlalchemy.ext.hybrid import hybrid_property

from database import Base
from domain.sequence_domain_service import SequenceState
from reasoning_config import THOUGHT_TYPES


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _in_list(column: str, values) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


# =============================================================================
# PROJECTS & SESSIONS
# =============================================================================

class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("length(trim(name)) > 0", name="projects_name_not_empty"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    settings = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ReasoningSession(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        UniqueConstraint("project_id", "session_name", name="sessions_project_name_unique"),
        CheckConstraint(_in_list("session_type", ("memory", "thinking", "mixed")), name="sessions_type_valid"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    session_name = Column(String(255), nullable=False)
    session_type = Column(String(50), nullable=False, default="mixed")
    description = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, default=dict)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# =============================================================================
# THINKING SEQUENCES
# =============================================================================

class ThinkingSequence(Base):
    __tablename__ = "thinking_sequences"
    __table_args__ = (
        CheckConstraint("length(trim(sequence_name)) > 0", name="thinking_seq_name_not_empty"),
        CheckConstraint(_in_list("state", [s.value for s in SequenceState]), name="thinking_seq_state_valid"),
        Index("idx_thinking_seq_state", "state"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    goal = Column(Text, nullable=True)
    _state = Column("state", String(20), nullable=False, default=SequenceState.ACTIVE.value)
    completion_summary = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # State is written only by ConclusionFinalizer.mark_complete
    # (conditional UPDATE ... WHERE state = 'active').
    @hybrid_property
    def state(self):
        """Read-only state - completion goes through ConclusionFinalizer"""
        return self._state

    @state.setter
    def state(self, value):
        raise RuntimeError(
            f"DIRECT STATE ASSIGNMENT BLOCKED: sequence.state = '{value}'. "
            f"Use ConclusionFinalizer.finalize() to complete a sequence."
        )

    @hybrid_property
    def is_complete(self):
        return self._state == SequenceState.COMPLETE.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "session_id": self.session_id,
            "sequence_name": self.sequence_name,
            "description": self.description,
            "goal": self.goal,
            "state": self._state,
            "is_complete": self.is_complete,
            "completion_summary": self.completion_summary,
            "metadata": self.metadata_ or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Thought(Base):
    """
    One reasoning step. Rows are never updated: a revision is a new row with
    the same thought_number and the next revision_number.
    """
    __tablename__ = "thoughts"
    __table_args__ = (
        UniqueConstraint("sequence_id", "thought_number", "revision_number", name="thoughts_number_revision_unique"),
        CheckConstraint("confidence_level >= 0.0 AND confidence_level <= 1.0", name="thoughts_confidence_valid"),
        CheckConstraint("length(trim(content)) > 0", name="thoughts_content_not_empty"),
        CheckConstraint("thought_number > 0", name="thoughts_number_positive"),
        CheckConstraint("total_thoughts > 0", name="thoughts_total_positive"),
        CheckConstraint("revision_number >= 0", name="thoughts_revision_non_negative"),
        CheckConstraint(_in_list("thought_type", THOUGHT_TYPES), name="thoughts_type_valid"),
        Index("idx_thoughts_branch_id", "branch_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sequence_id = Column(Integer, ForeignKey("thinking_sequences.id", ondelete="CASCADE"), nullable=False, index=True)
    thought_number = Column(Integer, nullable=False)
    revision_number = Column(Integer, nullable=False, default=0)
    total_thoughts = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    thought_type = Column(String(50), nullable=False, default="reasoning")
    confidence_level = Column(Float, nullable=False, default=0.5)
    next_thought_needed = Column(Boolean, nullable=False, default=True)
    is_revision = Column(Boolean, nullable=False, default=False)
    revises_thought_id = Column(Integer, ForeignKey("thoughts.id"), nullable=True)
    branch_from_thought_id = Column(Integer, ForeignKey("thoughts.id"), nullable=True)
    branch_id = Column(String(255), nullable=True)  # NULL / 'main' = trunk
    metadata_ = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_id": self.sequence_id,
            "thought_number": self.thought_number,
            "revision_number": self.revision_number,
            "total_thoughts": self.total_thoughts,
            "content": self.content,
            "thought_type": self.thought_type,
            "confidence_level": self.confidence_level,
            "next_thought_needed": self.next_thought_needed,
            "is_revision": self.is_revision,
            "revises_thought_id": self.revises_thought_id,
            "branch_from_thought_id": self.branch_from_thought_id,
            "branch_id": self.branch_id,
            "metadata": self.metadata_ or {},
            "created_at": _iso(self.created_at),
        }


class ThinkingBranch(Base):
    __tablename__ = "thinking_branches"
    __table_args__ = (
        CheckConstraint("length(trim(branch_id)) > 0", name="thinking_branch_id_not_empty"),
        CheckConstraint("length(trim(branch_name)) > 0", name="thinking_branch_name_not_empty"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sequence_id = Column(Integer, ForeignKey("thinking_sequences.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(String(255), nullable=False, unique=True)
    branch_name = Column(String(255), nullable=False)
    branch_from_thought_id = Column(Integer, ForeignKey("thoughts.id"), nullable=False)
    description = Column(Text, nullable=True)
    rationale = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_merged = Column(Boolean, nullable=False, default=False)
    merge_summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_id": self.sequence_id,
            "branch_id": self.branch_id,
            "branch_name": self.branch_name,
            "branch_from_thought_id": self.branch_from_thought_id,
            "description": self.description,
            "rationale": self.rationale,
            "is_active": self.is_active,
            "is_merged": self.is_merged,
            "merge_summary": self.merge_summary,
            "created_at": _iso(self.created_at),
        }


# =============================================================================
# DECISION MEMORIES
# =============================================================================

class Memory(Base):
    __tablename__ = "memories"
    __table_args__ = (
        CheckConstraint("importance_score >= 0.0 AND importance_score <= 1.0", name="memories_importance_valid"),
        Index("idx_memories_type", "memory_type"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="SET NULL"), nullable=True)
    content = Column(Text, nullable=False)
    memory_type = Column(String(50), nullable=False)
    importance_score = Column(Float, nullable=False, default=0.5)
    thinking_sequence_id = Column(
        Integer, ForeignKey("thinking_sequences.id", ondelete="SET NULL"), nullable=True, index=True
    )
    metadata_ = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


# =============================================================================
# INSIGHT PROCESSING OUTBOX
# =============================================================================

class InsightQueueEntry(Base):
    __tablename__ = "insight_processing_queue"
    __table_args__ = (
        CheckConstraint("task_priority >= 1 AND task_priority <= 10", name="insight_queue_priority_valid"),
        CheckConstraint(
            _in_list("status", ("pending", "processing", "completed", "failed")),
            name="insight_queue_status_valid",
        ),
        Index("idx_insight_queue_status", "status", "task_priority"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_type = Column(String(50), nullable=False)
    task_priority = Column(Integer, nullable=False, default=5)
    source_type = Column(String(50), nullable=False)
    source_ids = Column(JSON, nullable=False, default=list)
    task_payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending")
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    result_summary = Column(JSON, nullable=True)
    insights_generated = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
