from fastapi import HTTPException, status

from ..core import errors

_STATUS_BY_ERROR: list[tuple[type[errors.ParticipationError], int]] = [
    (errors.SessionNotFound, status.HTTP_404_NOT_FOUND),
    (errors.ActivityNotFound, status.HTTP_404_NOT_FOUND),
    (errors.NotRegistered, status.HTTP_404_NOT_FOUND),
    (errors.SessionCancelled, status.HTTP_409_CONFLICT),
    (errors.AlreadyRegistered, status.HTTP_409_CONFLICT),
    (errors.SessionInPast, status.HTTP_410_GONE),
    (errors.NotActivityOwner, status.HTTP_403_FORBIDDEN),
    (errors.CapacityConflict, status.HTTP_503_SERVICE_UNAVAILABLE),
    (errors.JoinCodeUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(exc: errors.ParticipationError) -> HTTPException:
    if isinstance(exc, errors.ValidationFailed):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors)
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
