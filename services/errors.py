# services/errors.py
"""Failure kinds surfaced by crewboard operations.

Every error carries a ``kind`` tag and a message that is safe to show to an
end user. Storage and library exceptions are translated into these before
they leave the service layer.
"""

from __future__ import annotations


class CrewboardError(Exception):
    kind = "Error"
    default_message = "Request failed"
    retryable = False

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(CrewboardError):
    kind = "Unauthenticated"
    default_message = "Authentication required"


class InvalidCredentials(Unauthenticated):
    default_message = "Invalid email or password"


class InvalidOrExpiredCredential(Unauthenticated):
    default_message = "Session is invalid or has expired"


class Forbidden(CrewboardError):
    kind = "Forbidden"
    default_message = "You do not have permission to perform this action"


class NotFound(CrewboardError):
    kind = "NotFound"
    default_message = "Resource not found"


class InvalidInput(CrewboardError):
    kind = "InvalidInput"
    default_message = "Invalid input"


class DuplicateKey(InvalidInput):
    kind = "DuplicateKey"
    default_message = "Project key already exists"


class DuplicateEmail(InvalidInput):
    kind = "DuplicateEmail"
    default_message = "Email already registered"


class UnknownReference(InvalidInput):
    kind = "UnknownReference"
    default_message = "Referenced resource does not exist"


class Unavailable(CrewboardError):
    kind = "Unavailable"
    default_message = "Service temporarily unavailable, please retry"
    retryable = True


class SelfProtectionViolation(CrewboardError):
    kind = "SelfProtectionViolation"
    default_message = "You cannot deactivate or delete your own account"


def from_validation_error(exc) -> InvalidInput:
    """Summarize a pydantic ValidationError without echoing input values."""
    fields = sorted({".".join(str(p) for p in err.get("loc", ())) or "payload" for err in exc.errors()})
    return InvalidInput(f"Invalid value for: {', '.join(fields)}")
