"""
Domain Exceptions for the Reasoning Engine

All business-logic errors inherit from BaseReasoningException.
Callers of add_thought only ever need to handle SequenceNotFound and
SequenceAlreadyComplete; everything else is exceptional.
"""


class BaseReasoningException(Exception):
    """Base class for all reasoning-engine business errors"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Serialize for API responses"""
        return {
            "error": {
                "code": self.__class__.__name__,
                "message": self.message,
                "details": self.details
            }
        }


# =============================================================================
# Sequence Exceptions
# =============================================================================

class SequenceNotFound(BaseReasoningException):
    """Referenced thinking sequence does not exist"""

    def __init__(self, sequence_id):
        super().__init__(
            message=f"Reasoning sequence {sequence_id} not found",
            details={"sequence_id": sequence_id}
        )


class SequenceAlreadyComplete(BaseReasoningException):
    """Append attempted on a terminal sequence"""

    def __init__(self, sequence_id):
        super().__init__(
            message=(
                f"SEQUENCE_COMPLETED: Reasoning sequence #{sequence_id} is already "
                "completed and cannot accept new thoughts. Please start a new "
                "sequence if you need to continue reasoning."
            ),
            details={"sequence_id": sequence_id, "action": "start_new_sequence"}
        )


# =============================================================================
# Input Exceptions
# =============================================================================

class BlankInput(BaseReasoningException):
    """Required text field is empty or whitespace only"""

    def __init__(self, field: str):
        super().__init__(
            message=f"{field} must not be blank",
            details={"field": field}
        )


# =============================================================================
# Thought Exceptions
# =============================================================================

class ThoughtNotFound(BaseReasoningException):
    """Thought referenced for revision does not exist"""

    def __init__(self, thought_id):
        super().__init__(
            message=f"Thought {thought_id} not found",
            details={"thought_id": thought_id}
        )


class ThoughtLimitExceeded(BaseReasoningException):
    """Sequence already holds the configured maximum number of thoughts"""

    def __init__(self, sequence_id, max_thoughts: int):
        super().__init__(
            message=f"Exceeded maximum thoughts limit ({max_thoughts})",
            details={"sequence_id": sequence_id, "max_thoughts": max_thoughts}
        )


class UnsupportedExportFormat(BaseReasoningException):
    """Export requested in a format the exporter does not know"""

    def __init__(self, export_format: str, supported: list):
        super().__init__(
            message=f"Unsupported export format: {export_format}",
            details={"format": export_format, "supported": supported}
        )


# =============================================================================
# Infrastructure Exceptions
# =============================================================================

class StorageError(BaseReasoningException):
    """Underlying persistence failure (no retries at this layer)"""

    def __init__(self, operation: str, cause: Exception = None):
        super().__init__(
            message=f"Storage failure during {operation}",
            details={
                "operation": operation,
                "cause": type(cause).__name__ if cause else None
            }
        )


# =============================================================================
# HTTP Status Mapping
# =============================================================================

EXCEPTION_TO_STATUS = {
    SequenceNotFound: 404,
    ThoughtNotFound: 404,
    SequenceAlreadyComplete: 409,
    ThoughtLimitExceeded: 422,
    BlankInput: 422,
    UnsupportedExportFormat: 400,
    StorageError: 503,
}
