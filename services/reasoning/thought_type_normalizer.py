"""
Thought Type Normalizer

Maps a free-form label from the calling model onto one of the canonical
thought kinds. Nothing here raises.
"""
import difflib
from dataclasses import dataclass
from typing import Optional

from logging_config import get_logger
from reasoning_config import (
    THOUGHT_TYPES,
    DEFAULT_THOUGHT_TYPE,
    FALLBACK_THOUGHT_TYPE,
    BRANCH_INTENT_LABELS,
    BRANCH_INTENT_STORED_TYPE,
    THOUGHT_TYPE_SYNONYMS,
    TYPO_SIMILARITY_CUTOFF,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class NormalizedThoughtType:
    """Result of normalization. branch_intent keeps the caller's fork label."""
    thought_type: str
    original_label: Optional[str]
    branch_intent: Optional[str] = None

    @property
    def is_branch_intent(self) -> bool:
        return self.branch_intent is not None


def normalize_thought_type(label: Optional[str]) -> NormalizedThoughtType:
    """
    Resolution order: canonical, branch intent, synonym, typo, fallback.

    >>> normalize_thought_type("alternative").thought_type
    'hypothesis'
    >>> normalize_thought_type("foobar").thought_type
    'general'
    """
    if label is None or not str(label).strip():
        return NormalizedThoughtType(DEFAULT_THOUGHT_TYPE, label)

    key = str(label).strip().lower()

    if key in THOUGHT_TYPES:
        return NormalizedThoughtType(key, label)

    if key in BRANCH_INTENT_LABELS:
        logger.info("thought_type_branch_intent", label=label, stored_as=BRANCH_INTENT_STORED_TYPE)
        return NormalizedThoughtType(BRANCH_INTENT_STORED_TYPE, label, branch_intent=key)

    if key in THOUGHT_TYPE_SYNONYMS:
        mapped = THOUGHT_TYPE_SYNONYMS[key]
        logger.info("thought_type_mapped", label=label, mapped_to=mapped)
        return NormalizedThoughtType(mapped, label)

    close = difflib.get_close_matches(key, THOUGHT_TYPES, n=1, cutoff=TYPO_SIMILARITY_CUTOFF)
    if close:
        logger.info("thought_type_typo_folded", label=label, mapped_to=close[0])
        return NormalizedThoughtType(close[0], label)

    logger.info("thought_type_unknown", label=label, mapped_to=FALLBACK_THOUGHT_TYPE)
    return NormalizedThoughtType(FALLBACK_THOUGHT_TYPE, label)
