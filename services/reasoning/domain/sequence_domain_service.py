"""
Sequence Domain Service - pure domain layer
===========================================
No sessions, commits, async, logging or side effects.
Only the business rules of a reasoning sequence:

- the active -> complete state machine
- thought numbering and estimates
- the conclusion-detection policy
- rendering of transcripts and decision documents
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

from exceptions import BlankInput
from reasoning_config import (
    CONCLUSION_PHRASES,
    CONFIDENCE,
    TRUNK_BRANCH_ID,
)


class SequenceState(str, Enum):
    """All states a thinking sequence can be in"""
    ACTIVE = "active"
    COMPLETE = "complete"


class CompletionReason(Enum):
    """Typical reasons for completing a sequence"""
    CONCLUSION_TYPE = "Conclusion thought appended"
    CONCLUSION_PHRASE = "Conclusion phrasing detected"
    EXPLICIT_COMPLETE = "Explicit completion requested"


@dataclass
class SequenceTransitioned:
    """Domain event - a sequence changed state"""
    sequence_id: int
    from_state: str
    to_state: str
    reason: str
    timestamp: str


# =============================================================================
# CONCLUSION DETECTION POLICY
# =============================================================================

class ConclusionDetector:
    """
    Decides whether an appended thought concludes its sequence.

    "explicit" only honours thought_type == conclusion.
    "heuristic" also matches conclusion phrasing in the content
    (case-insensitive substrings such as "therefore" or "decision:").
    """

    POLICIES = ("heuristic", "explicit")

    def __init__(self, policy: str = "heuristic", phrases: Iterable[str] = CONCLUSION_PHRASES):
        if policy not in self.POLICIES:
            raise ValueError(f"Unknown conclusion policy: {policy}. Expected one of {self.POLICIES}")
        self.policy = policy
        self.phrases = tuple(p.lower() for p in phrases)

    def detect(self, thought_type: str, content: str) -> Optional[CompletionReason]:
        """Return why the thought concludes the sequence, or None."""
        if thought_type == "conclusion":
            return CompletionReason.CONCLUSION_TYPE
        if self.policy == "heuristic":
            lowered = (content or "").lower()
            if any(phrase in lowered for phrase in self.phrases):
                return CompletionReason.CONCLUSION_PHRASE
        return None


# =============================================================================
# STATE MACHINE + NUMBERING
# =============================================================================

class SequenceDomainService:
    """
    Pure domain logic for reasoning sequences.

    Responsibilities:
    - validate state transitions (complete is terminal)
    - compute thought numbers, estimates and confidence defaults
    - emit domain events

    Does NOT:
    - commit/flush
    - run async operations
    - log
    """

    TERMINAL_STATES = {SequenceState.COMPLETE}

    ALLOWED_TRANSITIONS = {
        SequenceState.ACTIVE: {SequenceState.COMPLETE},
        SequenceState.COMPLETE: set(),
    }

    def can_append(self, state: str) -> bool:
        return SequenceState(state) not in self.TERMINAL_STATES

    def transition(
        self,
        sequence_id: int,
        from_state: str,
        to_state: SequenceState,
        reason: Optional[str] = None
    ) -> SequenceTransitioned:
        """
        Validate a state change and return the domain event.

        Raises:
            ValueError: when the transition is not allowed
        """
        current = SequenceState(from_state)
        if current in self.TERMINAL_STATES:
            raise ValueError(
                f"Cannot transition from terminal state '{current.value}'"
            )
        if to_state not in self.ALLOWED_TRANSITIONS[current]:
            raise ValueError(
                f"Invalid transition: cannot go from '{current.value}' to '{to_state.value}'"
            )

        return SequenceTransitioned(
            sequence_id=sequence_id,
            from_state=current.value,
            to_state=to_state.value,
            reason=reason or "State transition",
            timestamp=datetime.now(timezone.utc).isoformat()
        )

    @staticmethod
    def require_text(field: str, value: Optional[str]) -> str:
        """Reject empty or whitespace-only text before anything is written."""
        if value is None or not str(value).strip():
            raise BlankInput(field)
        return value

    @staticmethod
    def next_thought_number(max_thought_number: Optional[int]) -> int:
        """Numbering is global to the sequence; branches share the counter."""
        return (max_thought_number or 0) + 1

    @staticmethod
    def estimate_total(thought_number: int, max_total_thoughts: Optional[int]) -> int:
        """total_thoughts is a running estimate, never below the current number."""
        return max(thought_number, max_total_thoughts or 0)

    @staticmethod
    def confidence_for(is_conclusion: bool) -> float:
        return CONFIDENCE["conclusion"] if is_conclusion else CONFIDENCE["default"]

    @staticmethod
    def default_branch_name(thought_number: int) -> str:
        return f"Alternative {thought_number}"


# =============================================================================
# RENDERING
# =============================================================================

def is_trunk(branch_id: Optional[str]) -> bool:
    return not branch_id or branch_id == TRUNK_BRANCH_ID


def latest_revisions(thoughts: Iterable) -> list:
    """
    Collapse the append-only log to one row per thought_number,
    keeping the highest revision_number.
    """
    latest = {}
    for thought in thoughts:
        current = latest.get(thought.thought_number)
        if current is None or thought.revision_number > current.revision_number:
            latest[thought.thought_number] = thought
    return [latest[n] for n in sorted(latest)]


def _thought_line(thought, branch_names: Mapping[str, str], mark_revised: bool = False) -> str:
    branch_info = ""
    if not is_trunk(thought.branch_id):
        branch_info = f" [Branch: {branch_names.get(thought.branch_id, thought.branch_id)}]"
    revised = " (revised)" if mark_revised and thought.revision_number > 0 else ""
    return f"{thought.thought_number}. [{thought.thought_type}]{branch_info}{revised} {thought.content}"


def render_transcript(
    sequence_name: str,
    goal: Optional[str],
    thoughts: Sequence,
    branch_names: Mapping[str, str]
) -> str:
    """Human-readable transcript; the latest revision of each thought wins."""
    lines = [f"# {sequence_name}", "", "## Goal", f"{goal or ''}", "", "## Thoughts"]
    for thought in latest_revisions(thoughts):
        lines.append(_thought_line(thought, branch_names, mark_revised=True))
    return "\n".join(lines)


def render_decision(
    summary: str,
    goal: Optional[str],
    thoughts: Sequence,
    branch_names: Mapping[str, str]
) -> str:
    """Decision document: every row of the log, trunk and branches, in order."""
    ordered = sorted(thoughts, key=lambda t: (t.thought_number, t.revision_number))
    lines = [f"# Decision: {summary}", "", "## Goal", f"{goal or ''}", "", "## Reasoning Process"]
    for thought in ordered:
        lines.append(_thought_line(thought, branch_names, mark_revised=True))
    return "\n".join(lines) + "\n"


# Global instance for convenience
sequence_domain_service = SequenceDomainService()
