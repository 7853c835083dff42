"""Failures raised by the scheduling and participation services.

Every class maps to one outcome the API layer reports to the caller.
``CapacityConflict`` is the only one retried internally.
"""


class ParticipationError(Exception):
    default_message = "Participation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class SessionNotFound(ParticipationError):
    default_message = "Session not found"


class SessionCancelled(ParticipationError):
    default_message = "Session has been cancelled"


class SessionInPast(ParticipationError):
    default_message = "Session has already started"


class AlreadyRegistered(ParticipationError):
    default_message = "Already registered for this session"


class NotRegistered(ParticipationError):
    default_message = "Not registered for this session"


class CapacityConflict(ParticipationError):
    default_message = "Concurrent update on the session, please retry"


class ActivityNotFound(ParticipationError):
    default_message = "Activity not found"


class NotActivityOwner(ParticipationError):
    default_message = "Only the activity creator can do this"


class ValidationFailed(ParticipationError):
    default_message = "Validation failed"

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or self.default_message)


class JoinCodeUnavailable(ParticipationError):
    default_message = "Could not allocate a unique activity code, please retry"
