"""
Insight Processor - deterministic meta-learning insights from a concluded sequence.

Input is the payload enqueued by the Conclusion Finalizer:
    {"sequence": {"id", "goal", "name", "summary", "thoughts": [...]},
     "project_name", "thought_count", "processing_type"}

Output is a list of insight dicts. No LLM, no I/O.
"""
import re
from collections import OrderedDict
from typing import Dict, List, Optional

from domain.sequence_domain_service import is_trunk

TECH_PATTERNS = [
    re.compile(r"\b(react|angular|vue|next\.?js|nuxt)\b", re.IGNORECASE),
    re.compile(r"\b(node|python|java|typescript|javascript)\b", re.IGNORECASE),
    re.compile(r"\b(docker|kubernetes|aws|gcp|azure)\b", re.IGNORECASE),
    re.compile(r"\b(postgres|mysql|mongodb|redis)\b", re.IGNORECASE),
    re.compile(r"\b(rest|graphql|grpc|websocket)\b", re.IGNORECASE),
]

GOAL_STOPWORDS = {"should", "would", "could", "which"}

QUALITY_THRESHOLD = 0.5


def _clip(text: str, length: int) -> str:
    return (text or "")[:length] + "..."


def group_by_type(thoughts: List[dict]) -> Dict[str, List[dict]]:
    """Insertion-ordered type -> thoughts"""
    grouped: Dict[str, List[dict]] = OrderedDict()
    for thought in thoughts:
        grouped.setdefault(thought.get("thought_type") or "general", []).append(thought)
    return grouped


def branch_ids(thoughts: List[dict]) -> set:
    return {t.get("branch_id") for t in thoughts if not is_trunk(t.get("branch_id"))}


def reasoning_depth(thought_count: int) -> str:
    if thought_count < 5:
        return "shallow"
    if thought_count < 10:
        return "moderate"
    if thought_count < 20:
        return "deep"
    return "very_deep"


def confidence_progression(thoughts: List[dict]) -> List[dict]:
    return [
        {"thought_number": t.get("thought_number"), "confidence": t["confidence_level"]}
        for t in thoughts
        if t.get("confidence_level") is not None
    ]


def average_confidence(thoughts: List[dict]) -> float:
    values = [t["confidence_level"] for t in thoughts if t.get("confidence_level") is not None]
    if not values:
        return 0.5
    return sum(values) / len(values)


def summary_text(sequence: dict, grouped: Dict[str, List[dict]], branch_count: int) -> str:
    thoughts = sequence.get("thoughts") or []
    parts = [f'Analyzed "{sequence.get("goal")}" through {len(thoughts)} thoughts']

    if branch_count > 0:
        parts.append(f"exploring {branch_count} alternative approaches")

    main_types = [t for t, items in grouped.items() if len(items) > 1][:3]
    if main_types:
        parts.append(f"with focus on {', '.join(main_types)}")

    parts.append(f"Conclusion: {sequence.get('summary') or 'Decision reached'}")
    return ", ".join(parts) + "."


def impact_score(sequence: dict) -> float:
    """Deeper analysis and more alternatives score higher"""
    thoughts = sequence.get("thoughts") or []
    depth = min(len(thoughts) / 20, 1) * 0.5
    branches = min(len(branch_ids(thoughts)) / 3, 1) * 0.3
    conclusion = 0.2 if sequence.get("summary") else 0.1
    return depth + branches + conclusion


def tags_for(sequence: dict) -> List[str]:
    thoughts = sequence.get("thoughts") or []
    tags = ["reasoning", "decision"]
    if len(thoughts) > 10:
        tags.append("deep-analysis")
    if branch_ids(thoughts):
        tags.append("alternatives-explored")

    goal_words = (sequence.get("goal") or "").lower().split()
    tags.extend([w for w in goal_words if len(w) > 4 and w not in GOAL_STOPWORDS][:3])
    return tags


def technologies_in(text: str) -> List[str]:
    found = []
    for pattern in TECH_PATTERNS:
        for match in pattern.findall(text):
            tech = match.lower()
            if tech not in found:
                found.append(tech)
    return found


def process_patterns(thoughts: List[dict]) -> List[dict]:
    patterns = []
    if thoughts and thoughts[0].get("thought_type") == "question":
        patterns.append({
            "pattern": "question_first_approach",
            "description": "Started reasoning with questions",
        })

    revision_count = sum(1 for t in thoughts if t.get("is_revision"))
    if revision_count > 0:
        patterns.append({
            "pattern": "iterative_refinement",
            "description": f"Revised thinking {revision_count} times",
        })
    return patterns


def recommendations_for(grouped: Dict[str, List[dict]]) -> List[dict]:
    recommendations = []
    if len(grouped.get("question", [])) < 2:
        recommendations.append({
            "description": "Consider asking more questions to explore the problem space",
            "priority": "medium",
        })
    if not grouped.get("hypothesis"):
        recommendations.append({
            "description": "Try forming hypotheses before jumping to conclusions",
            "priority": "low",
        })
    return recommendations


def quality_score(thoughts: List[dict]) -> float:
    questions = sum(1 for t in thoughts if t.get("thought_type") == "question")
    hypotheses = sum(1 for t in thoughts if t.get("thought_type") == "hypothesis")
    has_conclusion = any(t.get("thought_type") == "conclusion" for t in thoughts)

    score = min(len(thoughts) / 10, 1) * 0.3
    score += min(questions / 3, 1) * 0.2
    score += min(hypotheses / 2, 1) * 0.2
    score += 0.1 if has_conclusion else 0
    score += average_confidence(thoughts) * 0.2
    return score


# =============================================================================
# INSIGHTS
# =============================================================================

def reasoning_process_insight(sequence: dict) -> dict:
    thoughts = sequence.get("thoughts") or []
    grouped = group_by_type(thoughts)
    branch_count = len(branch_ids(thoughts))
    chain = "\n\n".join(f"[{t.get('thought_type')}] {t.get('content', '')}" for t in thoughts)

    considered = [t for t in thoughts if t.get("thought_type") in ("observation", "reasoning")]

    return {
        "insight_type": "reasoning_process",
        "insight_category": "meta_learning",
        "insight_subcategory": "decision_making",
        "title": f"Reasoning: {sequence.get('goal')}",
        "summary": summary_text(sequence, grouped, branch_count),
        "detailed_content": {
            "goal": sequence.get("goal"),
            "conclusion": sequence.get("summary"),
            "thought_count": len(thoughts),
            "branch_count": branch_count,
            "thought_types": [{"type": t, "count": len(items)} for t, items in grouped.items()],
            "key_considerations": [_clip(t.get("content"), 100) for t in considered[:5]],
            "alternatives_explored": [
                {"content": _clip(t.get("content"), 100), "branch": t.get("branch_id") or "main"}
                for t in thoughts
                if not is_trunk(t.get("branch_id")) or t.get("thought_type") == "hypothesis"
            ],
            "reasoning_depth": reasoning_depth(len(thoughts)),
            "confidence_progression": confidence_progression(thoughts),
        },
        "source_type": "thinking_sequence",
        "source_ids": [sequence.get("id")],
        "detection_method": "thinking_sequence_analysis",
        "confidence_score": 0.9,
        "relevance_score": 0.8,
        "impact_score": impact_score(sequence),
        "tags": tags_for(sequence),
        "technologies": technologies_in(chain),
        "patterns": process_patterns(thoughts),
        "evidence": [
            {
                "description": _clip(t.get("content"), 150),
                "type": t.get("thought_type"),
                "confidence": t.get("confidence_level") or 0.5,
            }
            for t in considered[:3]
        ],
        "recommendations": recommendations_for(grouped),
    }


def pattern_insights(sequence: dict) -> List[dict]:
    thoughts = sequence.get("thoughts") or []
    insights = []

    if len(thoughts) > 10:
        insights.append({
            "insight_type": "pattern",
            "insight_category": "reasoning",
            "insight_subcategory": "analysis_depth",
            "title": "Deep Analysis Pattern Detected",
            "summary": f"Thorough analysis with {len(thoughts)} thoughts for: {sequence.get('goal')}",
            "confidence_score": 0.8,
            "source_type": "thinking_sequence",
            "source_ids": [sequence.get("id")],
        })

    branches = branch_ids(thoughts)
    if branches:
        insights.append({
            "insight_type": "pattern",
            "insight_category": "reasoning",
            "insight_subcategory": "alternative_thinking",
            "title": "Alternative Exploration Pattern",
            "summary": f"Explored {len(branches)} alternative approaches for decision making",
            "confidence_score": 0.85,
            "source_type": "thinking_sequence",
            "source_ids": [sequence.get("id")],
        })

    return insights


def decision_quality_insight(sequence: dict) -> Optional[dict]:
    thoughts = sequence.get("thoughts") or []
    if quality_score(thoughts) >= QUALITY_THRESHOLD:
        return None

    return {
        "insight_type": "improvement",
        "insight_category": "decision_quality",
        "title": "Quick Decision - Consider More Analysis",
        "summary": (
            f"Decision made with limited analysis ({len(thoughts)} thoughts). "
            "Consider exploring more alternatives."
        ),
        "confidence_score": 0.7,
        "source_type": "thinking_sequence",
        "source_ids": [sequence.get("id")],
        "recommendations": [{
            "description": "Consider adding more questions and hypotheses before concluding",
            "priority": "medium",
        }],
    }


def can_process(task_type: str, payload: dict) -> bool:
    return task_type == "thinking_sequence_insights" and bool((payload or {}).get("sequence"))


def extract_insights(payload: dict) -> List[dict]:
    """
    All insights for one concluded sequence.

    Raises:
        ValueError: payload has no sequence
    """
    sequence = (payload or {}).get("sequence")
    if not sequence:
        raise ValueError("Insight payload has no sequence")

    insights = [reasoning_process_insight(sequence)]
    insights.extend(pattern_insights(sequence))

    quality = decision_quality_insight(sequence)
    if quality:
        insights.append(quality)

    return insights
