from fastapi import HTTPException, status

from ..domain.errors import (
    CapacityExceededError,
    ConfigurationError,
    DomainError,
    DuplicateBookingError,
    InvalidTransitionError,
    ReservationNotFoundError,
    ValidationError,
    VolunteerNotFoundError,
)

_STATUS_BY_ERROR: dict[type[DomainError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    VolunteerNotFoundError: status.HTTP_404_NOT_FOUND,
    ReservationNotFoundError: status.HTTP_404_NOT_FOUND,
    CapacityExceededError: status.HTTP_409_CONFLICT,
    DuplicateBookingError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: DomainError) -> HTTPException:
    """Map a domain error onto a response carrying a stable machine-readable code."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            status_code = _STATUS_BY_ERROR[cls]
            break
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": str(exc)})
