"""Domain errors raised by the scheduling and progression engines."""

from pydantic import BaseModel

from src.domain.member import Member


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str


class ChoreWorldError(Exception):
    """Base class for errors the calling layer can present to a user."""

    code: str = ErrorCode.ERR_UNKNOWN
    suggestion: str = "Please try again later."

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, suggestion=self.suggestion)


class InvalidInputError(ChoreWorldError, ValueError):
    """Malformed input: negative XP, bad dates, empty identifiers, invalid rotation orders."""

    code = ErrorCode.ERR_INVALID_INPUT
    suggestion = "Check the submitted values and try again."


class NotFoundError(ChoreWorldError, LookupError):
    """A referenced member, task, duty type or assignment does not exist in the group."""

    code = ErrorCode.ERR_NOT_FOUND
    suggestion = "Make sure the item exists and belongs to your family."


class PermissionDeniedError(ChoreWorldError):
    """The acting member lacks the privilege for the operation."""

    code = ErrorCode.ERR_PERMISSION_DENIED
    suggestion = "Ask a family admin to perform this action."


class InvalidStateTransitionError(ChoreWorldError):
    """The record is not in a state that allows the operation (e.g. already completed)."""

    code = ErrorCode.ERR_INVALID_STATE_TRANSITION
    suggestion = "Refresh to see the latest state of this assignment."


def require_group_id(group_id: str | int | None) -> str:
    """Validate and normalise a group identifier.

    Raises:
        InvalidInputError: If the identifier is missing or blank
    """
    if group_id is None or not str(group_id).strip():
        msg = "Group identifier must not be empty"
        raise InvalidInputError(msg)
    return str(group_id).strip()


def require_privileged(acting_member: Member, *, group_id: str, action: str = "do this") -> None:
    """Require the acting member to be an admin of ``group_id``.

    Raises:
        PermissionDeniedError: If the actor is not an admin or belongs to another group
    """
    if not acting_member.is_privileged or acting_member.group_id != group_id:
        msg = f"Only a family admin can {action}"
        raise PermissionDeniedError(msg)


def build_error_response(error: Exception) -> ErrorResponse:
    """Convert any exception into an ErrorResponse without leaking internals."""
    if isinstance(error, ChoreWorldError):
        return error.to_response()
    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion=ChoreWorldError.suggestion,
    )
