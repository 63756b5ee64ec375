"""Exception hierarchy for visa-audit."""


class VisaAuditError(Exception):
    """Base exception for all visa-audit errors."""


class LLMClientError(VisaAuditError):
    """Raised when a model call fails. Never retried."""


class JSONParseError(VisaAuditError):
    """LLM response could not be parsed as JSON."""

    def __init__(self, message: str, raw_response: str = "") -> None:
        super().__init__(message)
        self.raw_response = raw_response


class InvalidRequestError(VisaAuditError):
    """Request rejected before any work starts."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class DocumentValidationError(InvalidRequestError):
    """Uploaded document rejected before any model call (400, 413 or 415)."""


class SessionNotFoundError(VisaAuditError, KeyError):
    """No active session with the requested id."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "session not found"


class RateLimitExceeded(VisaAuditError):
    """Client exceeded the request budget for the current window."""

    def __init__(self, reset_in: int, remaining: int = 0) -> None:
        super().__init__(f"Rate limit exceeded. Please try again in {reset_in} seconds.")
        self.reset_in = reset_in
        self.remaining = remaining


class ReauditError(InvalidRequestError):
    """Raised when a re-audit request cannot be started."""
