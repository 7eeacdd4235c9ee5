"""
Export of reasoning sequences (markdown / text / json) and completion
summaries for explicitly completed sequences.
"""
import json
from datetime import datetime
from typing import List, Optional

from domain.sequence_domain_service import is_trunk
from exceptions import SequenceNotFound, UnsupportedExportFormat
from logging_config import get_logger
from reasoning_config import CONFIDENCE
from sequence_query_service import SequenceQueryService

logger = get_logger(__name__)

EXPORT_FORMATS = ("markdown", "text", "json")


def _clip(text: str, length: int) -> str:
    return text[:length] + ("..." if len(text) > length else "")


def _latest(thoughts: List[dict]) -> List[dict]:
    """One row per thought_number: the highest revision."""
    latest = {}
    for thought in thoughts:
        current = latest.get(thought["thought_number"])
        if current is None or thought["revision_number"] > current["revision_number"]:
            latest[thought["thought_number"]] = thought
    return [latest[n] for n in sorted(latest)]


def _trunk(thoughts: List[dict]) -> List[dict]:
    return _latest([t for t in thoughts if is_trunk(t["branch_id"])])


def generate_summary(sequence_name: str, goal: Optional[str], thoughts) -> str:
    """
    Completion summary from the trunk: conclusions and up to three
    high-confidence thoughts. Takes ORM rows or dicts.
    """
    rows = [t if isinstance(t, dict) else t.to_dict() for t in thoughts]
    trunk = _trunk(rows)

    if not trunk:
        return "Empty thinking sequence"

    conclusions = [t for t in trunk if t["thought_type"] == "conclusion"]
    high_confidence = [
        t for t in trunk if (t["confidence_level"] or 0) >= CONFIDENCE["high_confidence_threshold"]
    ]

    summary = f'Thinking sequence "{sequence_name}" completed with {len(trunk)} thoughts.\n\n'
    summary += f"Goal: {goal or 'General reasoning'}\n\n"

    if conclusions:
        summary += "Key Conclusions:\n"
        for i, thought in enumerate(conclusions, 1):
            summary += f"{i}. {_clip(thought['content'], 200)}\n"
        summary += "\n"

    if high_confidence:
        summary += f"High-Confidence Insights ({len(high_confidence)}):\n"
        for i, thought in enumerate(high_confidence[:3], 1):
            summary += f"{i}. {_clip(thought['content'], 150)}\n"

    return summary


def _created(view: dict) -> str:
    if not view.get("created_at"):
        return "unknown"
    return datetime.fromisoformat(view["created_at"]).strftime("%Y-%m-%d %H:%M:%S")


def to_markdown(view: dict) -> str:
    markdown = f"# {view['sequence_name']}\n\n"

    if view.get("description"):
        markdown += f"**Description:** {view['description']}\n\n"
    if view.get("goal"):
        markdown += f"**Goal:** {view['goal']}\n\n"

    markdown += f"**Status:** {'Completed' if view['is_complete'] else 'In Progress'}\n"
    markdown += f"**Created:** {_created(view)}\n\n"

    markdown += "## Thinking Process\n\n"
    for thought in _trunk(view["thoughts"]):
        confidence = round((thought["confidence_level"] or 0) * 100)
        markdown += f"### Thought {thought['thought_number']}\n"
        markdown += f"**Type:** {thought['thought_type']} | **Confidence:** {confidence}%\n\n"
        markdown += f"{thought['content']}\n\n"
        if thought["revision_number"] > 0:
            markdown += "*This is a revision of an earlier thought.*\n\n"

    if view.get("branches"):
        markdown += "## Alternative Branches\n\n"
        for branch in view["branches"]:
            markdown += f"### {branch['branch_name']}\n"
            if branch.get("description"):
                markdown += f"{branch['description']}\n\n"

            branch_thoughts = _latest([t for t in view["thoughts"] if t["branch_id"] == branch["branch_id"]])
            for thought in branch_thoughts:
                revised = " (revised)" if thought["revision_number"] > 0 else ""
                markdown += f"- **Thought {thought['thought_number']}:**{revised} {thought['content']}\n"
            markdown += "\n"

    if view.get("completion_summary"):
        markdown += f"## Summary\n\n{view['completion_summary']}\n"

    return markdown


def to_text(view: dict) -> str:
    name = view["sequence_name"]
    text = f"{name}\n{'=' * len(name)}\n\n"

    if view.get("goal"):
        text += f"Goal: {view['goal']}\n\n"

    text += "Thinking Process:\n\n"
    for thought in _trunk(view["thoughts"]):
        revised = "(revised) " if thought["revision_number"] > 0 else ""
        text += f"{thought['thought_number']}. [{thought['thought_type'].upper()}] {revised}{thought['content']}\n\n"

    if view.get("completion_summary"):
        text += f"Summary:\n{view['completion_summary']}\n"

    return text


class SequenceExporter:

    def __init__(self, query_service: SequenceQueryService = None, session_factory=None):
        self._queries = query_service or SequenceQueryService(session_factory)

    async def export(self, sequence_id: int, format: str = "markdown") -> str:
        """
        Raises:
            UnsupportedExportFormat: format is not markdown, text or json
            SequenceNotFound: no such sequence
        """
        fmt = (format or "").lower()
        if fmt not in EXPORT_FORMATS:
            raise UnsupportedExportFormat(format, list(EXPORT_FORMATS))

        view = await self._queries.get_sequence(
            sequence_id, include_branches=True, include_revisions=True, format="detailed"
        )
        if view is None:
            raise SequenceNotFound(sequence_id)

        logger.info("sequence_exported", sequence_id=sequence_id, format=fmt)

        if fmt == "json":
            return json.dumps(view, indent=2, default=str)
        if fmt == "text":
            return to_text(view)
        return to_markdown(view)
