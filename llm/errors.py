"""
Error taxonomy for the chat backend.

ValidationError and PersistenceError reach the HTTP layer as JSON errors.
GenerationError is turned into apology text inside an already-open stream.
TransportError is only logged.
"""

from typing import Iterable, List

CONTENT_POLICY_MARKER = "content management policy"


class ChatServiceError(Exception):
    """Base class for chat service errors."""


class ValidationError(ChatServiceError):
    """A required request field is missing or empty."""

    def __init__(self, message: str, fields: Iterable[str] = ()):
        super().__init__(message)
        self.fields: List[str] = list(fields)

    @classmethod
    def missing(cls, fields: List[str]) -> "ValidationError":
        """Build the error for one or more missing fields."""
        if len(fields) == 1:
            return cls(f"{fields[0]} is required", fields)
        names = ", ".join(fields[:-1]) + f" and {fields[-1]}"
        return cls(f"{names} are required", fields)


class PersistenceError(ChatServiceError):
    """The transcript store could not be reached or a query failed."""


class GenerationError(ChatServiceError):
    """The text-generation capability failed."""


class ContentPolicyError(GenerationError):
    """The provider rejected the prompt or reply under its content policy."""


class TransportError(ChatServiceError):
    """Writing to the client connection failed."""


def require_fields(**values: str) -> None:
    """
    Raise ValidationError naming every empty field.

    Keyword names are the public field names, e.g. ``require_fields(UserID=...)``.
    """
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValidationError.missing(missing)


def is_content_policy_violation(error: BaseException) -> bool:
    """True when the failure was a content-policy rejection."""
    if isinstance(error, ContentPolicyError):
        return True
    return CONTENT_POLICY_MARKER in str(error).lower()
