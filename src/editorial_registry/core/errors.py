"""Error kinds surfaced by the registries.

Callers branch on the exception type (or its ``code``), never on message text.
"""


class EditorialError(Exception):
    """Base class for every failure the registries report to callers."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(EditorialError):
    """Missing input or an unmet precondition on a transition or edit."""

    code = "VALIDATION_ERROR"


class NotFoundError(EditorialError):
    """A local record or a remote author does not exist (or could not be confirmed)."""

    code = "NOT_FOUND"


class IllegalTransitionError(EditorialError):
    """The requested status is not reachable from the current one."""

    code = "INVALID_TRANSITION"

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot transition from {current} to {target}")
        self.current = current
        self.target = target


class ConflictError(EditorialError):
    """Uniqueness violation, or the record changed underneath a write."""

    code = "CONFLICT"


class RemoteUnavailableError(EditorialError):
    """The Authors service could not be reached after all retries.

    Only raised when the client runs with the ``raise`` unreachable policy.
    """

    code = "REMOTE_UNAVAILABLE"


class TransientRemoteError(Exception):
    """A retryable failure talking to the Authors service.

    Internal to the authors client: it drives tenacity and never escapes it.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
