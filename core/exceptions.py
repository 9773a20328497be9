"""Typed service errors.

Services raise these; ``main.py`` renders every one of them as
``{"detail": ..., "code": ...}`` with the class's HTTP status.
"""
from fastapi import status


class EcoHaatError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, detail: str, code: str | None = None):
        super().__init__(detail)
        self.detail = detail
        if code is not None:
            self.code = code


class NotFoundError(EcoHaatError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ValidationFailedError(EcoHaatError):
    code = "validation_failed"


class PermissionDeniedError(EcoHaatError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class IllegalTransitionError(EcoHaatError):
    status_code = status.HTTP_409_CONFLICT
    code = "illegal_transition"

    def __init__(self, current: str, target: str, detail: str | None = None):
        super().__init__(detail or f"Cannot move from '{current}' to '{target}'")
        self.current = current
        self.target = target


class ConcurrentUpdateError(EcoHaatError):
    status_code = status.HTTP_409_CONFLICT
    code = "concurrent_update"


class DiscountRejectedError(EcoHaatError):
    """Carries one of the discount validator's failure codes (e.g. ``EXPIRED``)."""


class DeliveryError(EcoHaatError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "delivery_failed"
