"""
Custom exception classes and error handling.

Two layers:
- Domain errors raised by services (plain Python exceptions, no HTTP).
- API exceptions raised by routers, giving consistent error responses.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class SlimFitError(Exception):
    """Base class for domain errors raised by the sync engine."""


class InvalidCheckInError(SlimFitError, ValueError):
    """Submitted weight is missing, non-numeric, non-finite or non-positive."""


class ReflectionRequiredError(SlimFitError):
    """The submission deviates enough that a reflection reason is required."""

    def __init__(self, weight: float, today_target: float):
        super().__init__(
            f"Weight {weight} needs a reflection reason (today's target {today_target})"
        )
        self.weight = weight
        self.today_target = today_target


class ProfileMissingError(SlimFitError):
    """Operation needs an onboarded profile."""

    def __init__(self, detail: str = "No profile has been set up yet"):
        super().__init__(detail)


class ProfileExistsError(SlimFitError):
    """Onboarding was attempted while a profile is already set up."""


class InvalidTeamCodeError(SlimFitError, ValueError):
    """Team code is not 6 alphanumeric characters."""


class TeamRequiredError(SlimFitError):
    """Operation needs the profile to be in a team."""


class InvalidChatMessageError(SlimFitError, ValueError):
    """Chat message text is empty."""


class StoreQuotaExceededError(SlimFitError):
    """The persistence store refused a write because it is out of capacity."""


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None, error_code: Optional[str] = None):
        if error_code is None:
            error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class ConflictError(APIException):
    """Resource conflict (e.g., profile already exists)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )
