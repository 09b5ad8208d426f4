"""Domain exceptions raised by the convoy service.

Each carries the HTTP status it maps to; app.main turns them into
``{"detail": ...}`` responses.
"""
from __future__ import annotations


class ConvoyServiceError(Exception):
    status_code: int = 500
    code: str = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(ConvoyServiceError):
    """Missing or malformed required field."""
    status_code = 400
    code = "validation_error"


class NotFound(ConvoyServiceError):
    status_code = 404
    code = "not_found"


class DuplicateRegistration(ConvoyServiceError):
    """Registration number already used by a vehicle in any convoy."""
    status_code = 409
    code = "duplicate_registration"

    def __init__(self, registration_numbers: list[str]):
        self.registration_numbers = sorted(set(registration_numbers))
        joined = ", ".join(self.registration_numbers)
        super().__init__(f"Vehicle registration number already exists: {joined}")


class ConvoyConflict(ConvoyServiceError):
    """Merge request whose convoy metadata disagrees with the stored convoy."""
    status_code = 409
    code = "convoy_conflict"
