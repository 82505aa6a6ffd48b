"""Error kinds raised by the boardroom core. Each maps to one stable `kind`."""


class BoardroomError(Exception):
    """Base for all core failures surfaced to the calling layer."""

    kind = "boardroom_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(BoardroomError):
    """Bad input; nothing was written."""

    kind = "validation_error"


class DirectorsInvalid(ValidationError):
    """One or more director ids are missing or not active."""

    kind = "directors_invalid"

    def __init__(self, message: str, director_ids: list[str] | None = None) -> None:
        self.director_ids = list(director_ids or [])
        super().__init__(message)


class TooManyParticipants(ValidationError):
    kind = "too_many_participants"


class NotFound(BoardroomError):
    kind = "not_found"


class InvalidTransition(BoardroomError):
    """Operation not legal for the meeting's current status."""

    kind = "invalid_transition"

    def __init__(self, operation: str, status: str) -> None:
        self.operation = operation
        self.status = status
        super().__init__(f"Cannot {operation} a meeting in status '{status}'")


class NoActiveParticipants(BoardroomError):
    kind = "no_active_participants"


class StoreError(BoardroomError):
    """Persistence failed; safe to retry after re-fetching state."""

    kind = "store_error"
    retryable = True
