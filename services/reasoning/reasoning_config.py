"""
Reasoning Engine Configuration
Single source of truth for thresholds, labels & defaults
"""
import os

# =========================
# Sequence limits
# =========================

MAX_THOUGHTS = int(os.getenv("REASONING_MAX_THOUGHTS", "50"))

# "heuristic": type == conclusion OR content matches CONCLUSION_PHRASES
# "explicit":  type == conclusion only
CONCLUSION_POLICY = os.getenv("REASONING_CONCLUSION_POLICY", "heuristic")

CONCLUSION_PHRASES = ("therefore", "decision:")

# =========================
# Thought types
# =========================

THOUGHT_TYPES = (
    "reasoning",
    "conclusion",
    "question",
    "hypothesis",
    "observation",
    "assumption",
    "general",
)

DEFAULT_THOUGHT_TYPE = "observation"
FALLBACK_THOUGHT_TYPE = "general"

BRANCH_INTENT_LABELS = frozenset({"alternative", "branch", "option", "variant", "fork"})
BRANCH_INTENT_STORED_TYPE = "hypothesis"

THOUGHT_TYPE_SYNONYMS = {
    "answer": "reasoning",
    "analysis": "reasoning",
    "idea": "hypothesis",
    "guess": "hypothesis",
    "finding": "observation",
    "note": "observation",
    "premise": "assumption",
    "final": "conclusion",
}

# difflib ratio needed to fold a typo onto a canonical type
TYPO_SIMILARITY_CUTOFF = 0.8

# =========================
# Confidence
# =========================

CONFIDENCE = {
    "conclusion": 0.9,
    "default": 0.7,
    "high_confidence_threshold": 0.7,
}

# =========================
# Sessions & branches
# =========================

SESSION_PREFIX = "reasoning-"
SESSION_TYPE = "thinking"
SEQUENCE_NAME_PREFIX = "Reasoning: "
TRUNK_BRANCH_ID = "main"
BRANCH_DESCRIPTION_CLIP = 100

# =========================
# Decision memory
# =========================

DECISION_MEMORY = {
    "memory_type": "decision",
    "session_name": "decisions",
    "session_type": "memory",
    "importance_score": 0.8,
}

# =========================
# Insight queue
# =========================

INSIGHT_QUEUE = {
    "task_type": "thinking_sequence_insights",
    "source_type": "thinking_sequence",
    "processing_type": "thinking_summary",
    "priority": 5,
    "max_retries": 3,
    # pending entries older than this are re-dispatched by the relay
    "relay_grace_seconds": 300,
    # attempted rows (pending retry or processing) untouched this long are abandoned
    "relay_abandon_seconds": 3600,
    "relay_batch_size": 50,
}

# =========================
# Progress phases (percent thresholds)
# =========================

PROGRESS_PHASES = (
    (90, "concluding"),
    (70, "synthesizing"),
    (30, "analyzing"),
    (0, "exploring"),
)

# =========================
# Logging
# =========================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")
LOG_FILE = os.getenv("LOG_FILE") or None
