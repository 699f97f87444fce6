"""
Error taxonomy shared by the service layer.

Services raise these; the HTTP layer renders them (see `main.py`) as
`{"detail": message}` with the error's status code.
"""

from __future__ import annotations


class DomainError(Exception):
    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

class NotFoundError(DomainError):
    status_code = 404


class OrderNotFound(NotFoundError):
    def __init__(self, message: str = "Order not found"):
        super().__init__(message)


class CustomerNotFound(NotFoundError):
    def __init__(self, message: str = "Customer not found or inactive"):
        super().__init__(message)


class UserNotFound(NotFoundError):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class OtpNotFound(NotFoundError):
    def __init__(self, message: str = "No pending OTP found"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

class ValidationError(DomainError):
    status_code = 422


class InvalidParameter(ValidationError):
    pass


# ---------------------------------------------------------------------------
# State machine guards
# ---------------------------------------------------------------------------

class InvalidStateError(DomainError):
    status_code = 409


class InvalidTransition(InvalidStateError):
    pass


class AlreadyAssigned(InvalidStateError):
    def __init__(self, message: str = "Order already has a partner assigned"):
        super().__init__(message)


class NotReady(InvalidStateError):
    pass


class NotDeliverable(InvalidStateError):
    def __init__(self, message: str = "Only delivered orders can be rated"):
        super().__init__(message)


class AlreadyRated(InvalidStateError):
    pass


class ConflictError(DomainError):
    status_code = 409


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------

class UnauthorizedError(DomainError):
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class AuthenticationError(DomainError):
    status_code = 401

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class PartnerIneligible(DomainError):
    status_code = 400

    def __init__(self, message: str = "Partner not found or ineligible"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# OTP
# ---------------------------------------------------------------------------

class OtpError(DomainError):
    status_code = 400


class OtpExpired(OtpError):
    def __init__(self, message: str = "OTP has expired"):
        super().__init__(message)


class AttemptsExceeded(OtpError):
    def __init__(self, message: str = "Maximum attempts exceeded"):
        super().__init__(message)


class InvalidOtpCode(OtpError):
    def __init__(self, message: str = "Invalid OTP code", remaining_attempts: int | None = None):
        super().__init__(message)
        self.remaining_attempts = remaining_attempts


class RateLimited(DomainError):
    status_code = 429


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class DependencyUnavailable(DomainError):
    status_code = 503
