class DomainError(Exception):
    """Base class for errors the booking core reports to its callers."""

    code = "DOMAIN_ERROR"


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"


class InvalidDateError(ValidationError):
    code = "INVALID_DATE"


class CapacityExceededError(DomainError):
    code = "CAPACITY_EXCEEDED"


class DuplicateBookingError(DomainError):
    code = "DUPLICATE_BOOKING"


class VolunteerNotFoundError(DomainError):
    code = "VOLUNTEER_NOT_FOUND"


class ReservationNotFoundError(DomainError):
    code = "RESERVATION_NOT_FOUND"


class InvalidTransitionError(DomainError):
    code = "INVALID_TRANSITION"


class NotificationDeliveryError(DomainError):
    """Provider or network failure. Always treated as retryable."""

    code = "NOTIFICATION_DELIVERY_FAILED"


class ConfigurationError(DomainError):
    """A required collaborator setting is missing. Never retried."""

    code = "CONFIGURATION_ERROR"
