"""
Domain exceptions for the order, payment and enrollment workflow.

Every exception carries a human-readable message plus optional structured
details (offending ids, limits) that the API returns to the client.
main.py maps each class to its HTTP status through ERROR_STATUS_CODES.
"""
from typing import Any, Dict, Optional


class LearnHubError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(LearnHubError):
    """Missing or malformed input."""


class NotFoundError(LearnHubError):
    """Course, order, coupon or user does not exist."""


class ConflictError(LearnHubError):
    """Request conflicts with current state (already enrolled, duplicate code, terminal order)."""


class UnsupportedCurrencyError(LearnHubError):
    """Requested currency is outside the supported set."""

    def __init__(self, currency: str, supported=None):
        self.currency = currency
        details = {"currency": currency}
        if supported:
            details["supported_currencies"] = list(supported)
        super().__init__(f"Unsupported currency: {currency}", details)


class PaymentRequiredError(LearnHubError):
    """A paid order cannot move forward without proof of payment."""


class UpstreamError(LearnHubError):
    """Payment gateway or rate provider failure."""


class RateUnavailable(UpstreamError):
    """Exchange rate could not be fetched or parsed."""


class SignatureError(LearnHubError):
    """Webhook or payment signature failed verification."""


# Order builder rejections

class EmptyCart(ValidationError):
    def __init__(self):
        super().__init__("Cart is empty")


class CoursesUnavailable(NotFoundError):
    def __init__(self, missing):
        super().__init__("Some courses are no longer available", {"missing": list(missing)})


class CoursesUnpublished(ValidationError):
    def __init__(self, unpublished):
        super().__init__("Some courses are not published", {"unpublished": list(unpublished)})


class AlreadyEnrolled(ConflictError):
    def __init__(self, course_ids):
        super().__init__(
            "Already enrolled in one or more courses",
            {"enrolled_course_ids": list(course_ids)},
        )


ERROR_STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    UnsupportedCurrencyError: 400,
    PaymentRequiredError: 400,
    UpstreamError: 500,
    SignatureError: 400,
}


def status_code_for(exc: LearnHubError) -> int:
    """Resolve the HTTP status for an error, walking up the class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500
