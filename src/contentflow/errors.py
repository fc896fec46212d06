"""Error taxonomy for workflow operations.

Every rejection path raises a ``WorkflowError`` carrying a coarse ``kind`` and
a ``reason`` from a small fixed vocabulary, so callers can map failures to
responses deterministically instead of parsing messages.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError


class ErrorKind(str, Enum):
    """Coarse failure categories."""

    NOT_FOUND = "not_found"
    SCOPE_VIOLATION = "scope_violation"
    STATE_CONFLICT = "state_conflict"
    VALIDATION_ERROR = "validation_error"
    UPSTREAM_FAILURE = "upstream_failure"


class Reason(str, Enum):
    """Reason codes surfaced to callers."""

    # not_found
    LESSON_NOT_FOUND = "lesson_not_found"
    PHRASE_NOT_FOUND = "phrase_not_found"
    PROVERB_NOT_FOUND = "proverb_not_found"
    QUESTION_NOT_FOUND = "question_not_found"
    SUBMISSION_NOT_FOUND = "submission_not_found"

    # scope
    NO_SCOPE = "tutor_language_not_configured"
    PROFILE_INACTIVE = "profile_inactive"
    PHRASE_OUT_OF_SCOPE = "phrase_out_of_scope"

    # state_conflict
    ALREADY_FINISHED = "already_finished"
    ALREADY_PUBLISHED = "already_published"
    LESSON_NOT_DRAFT = "lesson_not_draft"
    PHRASE_NOT_FINISHED = "phrase_not_finished"
    PROVERB_NOT_FINISHED = "proverb_not_finished"
    QUESTION_NOT_FINISHED = "question_not_finished"
    QUESTION_MUST_BE_FINISHED = "question_must_be_finished"
    LINKED_PHRASE_MUST_BE_PUBLISHED = "linked_phrase_must_be_published"
    CANNOT_ADD_DRAFT_TO_PUBLISHED_LESSON = "cannot_add_draft_to_published_lesson"
    CANNOT_EDIT_NON_DRAFT = "cannot_edit_non_draft"
    NOT_FINISHED = "not_finished"
    REORDER_SET_MISMATCH = "reorder_set_mismatch"
    LESSON_HAS_CONTENT = "lesson_has_content"
    PROVERB_TEXT_CONFLICT = "proverb_text_conflict"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    NO_NEW_PHRASES_GENERATED = "no_new_phrases_generated"
    NO_NEW_PROVERBS_GENERATED = "no_new_proverbs_generated"
    SUBMISSION_ALREADY_REVIEWED = "submission_already_reviewed"

    # validation_error
    INVALID_INPUT = "invalid_input"
    PHRASE_NOT_IN_LESSON = "phrase_not_in_lesson"
    LANGUAGE_MISMATCH_WITH_LESSONS = "language_mismatch_with_lessons"
    PHRASE_HAS_NO_LESSONS = "phrase_has_no_lessons"
    NO_VALID_PHRASE_UPDATES = "no_valid_phrase_updates"
    REASON_REQUIRED = "reason_required"

    # upstream_failure
    LLM_GENERATION_FAILED = "llm_generation_failed"
    STORE_FAILURE = "store_failure"


class WorkflowError(Exception):
    """Base class for all workflow rejections."""

    kind: ErrorKind = ErrorKind.STATE_CONFLICT

    def __init__(
        self,
        reason: Reason,
        message: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        self.reason = reason
        self.details = details
        super().__init__(message or reason.value)

    def to_dict(self) -> dict:
        """Serialize to the payload handed back to clients (no stack traces)."""
        payload = {"kind": self.kind.value, "reason": self.reason.value}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class NotFoundError(WorkflowError):
    """Entity missing, soft-deleted, or outside the caller's scope."""

    kind = ErrorKind.NOT_FOUND


class ScopeViolationError(WorkflowError):
    """Actor may not act on this entity (403-equivalent)."""

    kind = ErrorKind.SCOPE_VIOLATION


class NoScopeError(ScopeViolationError):
    """Actor has no usable language scope."""

    def __init__(self, message: Optional[str] = None, reason: Reason = Reason.NO_SCOPE):
        super().__init__(reason, message)


class StateConflictError(WorkflowError):
    """Transition attempted from an invalid status, or a stale precondition."""

    kind = ErrorKind.STATE_CONFLICT


class ValidationFailedError(WorkflowError):
    """Malformed direct input or a broken cross-entity reference."""

    kind = ErrorKind.VALIDATION_ERROR

    @classmethod
    def from_pydantic(cls, error: ValidationError) -> "ValidationFailedError":
        details = [
            {"loc": list(item.get("loc", ())), "msg": item.get("msg", "")}
            for item in error.errors()
        ]
        return cls(Reason.INVALID_INPUT, str(error), details=details)


class UpstreamFailureError(WorkflowError):
    """LLM or storage call failed; propagated, never retried by the core."""

    kind = ErrorKind.UPSTREAM_FAILURE
