"""Exception hierarchy for the checkout core.

All checkout exceptions inherit from CheckoutException, so callers can map
any of them to a buyer-facing message with one handler.

Usage:
    from digistore_checkout.exceptions import CheckoutException, CouponRejected

    try:
        coupon = await resolver.validate(code)
    except CouponRejected as e:
        show(e.message)

All exceptions have:
- error_code: Machine-readable error code (e.g., "COUPON_REJECTED")
- message: Human-readable error message
- details: Optional additional context dictionary
- to_dict(): Convert to a response payload
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class CheckoutException(Exception):
    """Base exception for all checkout errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "CHECKOUT_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class CheckoutValidationError(CheckoutException):
    """Input rejected before any network call."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


# =============================================================================
# Rejections from remote authorities
# =============================================================================

class CouponRejectionReason(str, Enum):
    UNKNOWN = "unknown"
    EXPIRED = "expired"
    INELIGIBLE = "ineligible"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"


class GiftCardRejectionReason(str, Enum):
    UNKNOWN = "unknown"
    ZERO_BALANCE = "zero_balance"
    INSUFFICIENT = "insufficient"
    ALREADY_REDEEMED = "already_redeemed"
    UNAVAILABLE = "unavailable"


class CouponRejected(CheckoutException):
    """The coupon authority refused the code."""

    error_code = "COUPON_REJECTED"

    def __init__(
        self,
        message: str,
        reason: CouponRejectionReason = CouponRejectionReason.UNKNOWN,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["reason"] = reason.value
        super().__init__(message, details=details)
        self.reason = reason


class GiftCardRejected(CheckoutException):
    """The gift card ledger refused a validation or a debit."""

    error_code = "GIFT_CARD_REJECTED"

    def __init__(
        self,
        message: str,
        reason: GiftCardRejectionReason = GiftCardRejectionReason.UNKNOWN,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["reason"] = reason.value
        super().__init__(message, details=details)
        self.reason = reason


# =============================================================================
# Settlement
# =============================================================================

class SettlementError(CheckoutException):
    """A settlement attempt could not be completed."""

    error_code = "SETTLEMENT_ERROR"


class SettlementInProgress(SettlementError):
    """Another settlement attempt for this checkout is still running."""

    error_code = "SETTLEMENT_IN_PROGRESS"

    def __init__(self, message: str = "Your order is being processed, please wait.") -> None:
        super().__init__(message)


# =============================================================================
# Boundary (transport) errors
# =============================================================================

class BoundaryError(CheckoutException):
    """A backend boundary answered with an error status."""

    error_code = "BOUNDARY_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)
        self.status_code = status_code

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "BoundaryError":
        """Build from an error response body.

        The backend reports errors as ``{"error": ...}``, ``{"message": ...}``
        or ``{"detail": ...}``; ``error`` may itself be a string or an object.
        """
        if not isinstance(body, dict):
            return cls(str(body) or "Request failed", status_code=status_code)

        error_data = body.get("error", body.get("detail"))
        if isinstance(error_data, dict):
            return cls(
                error_data.get("message", "Request failed"),
                status_code=status_code,
                error_code=error_data.get("code"),
                details=error_data.get("details"),
            )
        if isinstance(error_data, list):
            return cls(
                "Validation Error",
                status_code=status_code,
                error_code="VALIDATION_ERROR",
                details={"errors": error_data},
            )

        message = body.get("message") or error_data or "Request failed"
        error_code = body.get("code")
        return cls(str(message), status_code=status_code, error_code=error_code)


class BoundaryUnavailable(BoundaryError):
    """No usable response: timeout or connection failure."""

    error_code = "BOUNDARY_UNAVAILABLE"


class BoundaryAuthenticationError(BoundaryError):
    """The backend rejected the buyer's credentials."""

    error_code = "AUTHENTICATION_ERROR"


class BoundaryRateLimited(BoundaryError):
    """The backend throttled the request."""

    error_code = "RATE_LIMITED"

    def __init__(
        self,
        message: str = "Too many requests",
        retry_after: Optional[int] = None,
        status_code: int = 429,
    ) -> None:
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, status_code=status_code, details=details)
        self.retry_after = retry_after
