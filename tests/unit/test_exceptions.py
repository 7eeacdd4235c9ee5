"""
DOMAIN EXCEPTION TESTS

Structured payloads and HTTP status mapping.
"""
from exceptions import (
    EXCEPTION_TO_STATUS,
    BaseReasoningException,
    BlankInput,
    SequenceAlreadyComplete,
    SequenceNotFound,
    StorageError,
    ThoughtLimitExceeded,
    ThoughtNotFound,
    UnsupportedExportFormat,
)


class TestExceptionPayloads:

    def test_sequence_not_found(self):
        exc = SequenceNotFound(42)
        assert exc.to_dict() == {
            "error": {
                "code": "SequenceNotFound",
                "message": "Reasoning sequence 42 not found",
                "details": {"sequence_id": 42},
            }
        }

    def test_already_complete_guides_caller(self):
        """The message tells the caller to start a new sequence."""
        exc = SequenceAlreadyComplete(7)
        assert exc.message.startswith("SEQUENCE_COMPLETED")
        assert "#7" in exc.message
        assert "start a new sequence" in exc.message
        assert exc.details["action"] == "start_new_sequence"

    def test_storage_error_names_cause(self):
        exc = StorageError("append_thought", RuntimeError("connection reset"))
        assert exc.details == {"operation": "append_thought", "cause": "RuntimeError"}

    def test_blank_input_names_field(self):
        exc = BlankInput("content")
        assert exc.message == "content must not be blank"
        assert exc.details == {"field": "content"}

    def test_storage_error_without_cause(self):
        assert StorageError("start_sequence").details["cause"] is None

    def test_all_are_reasoning_exceptions(self):
        for exc_class in EXCEPTION_TO_STATUS:
            assert issubclass(exc_class, BaseReasoningException)


class TestStatusMapping:

    def test_status_codes(self):
        assert EXCEPTION_TO_STATUS[SequenceNotFound] == 404
        assert EXCEPTION_TO_STATUS[ThoughtNotFound] == 404
        assert EXCEPTION_TO_STATUS[SequenceAlreadyComplete] == 409
        assert EXCEPTION_TO_STATUS[ThoughtLimitExceeded] == 422
        assert EXCEPTION_TO_STATUS[BlankInput] == 422
        assert EXCEPTION_TO_STATUS[UnsupportedExportFormat] == 400
        assert EXCEPTION_TO_STATUS[StorageError] == 503
