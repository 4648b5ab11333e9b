"""
Coupon validation against the storefront's promotion authority.

The resolver is stateless: it turns a code into a Coupon or raises
CouponRejected. Storing the result is the cart's job.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from digistore_checkout.client import StorefrontClient
from digistore_checkout.exceptions import (
    BoundaryError,
    BoundaryRateLimited,
    BoundaryUnavailable,
    CheckoutValidationError,
    CouponRejected,
    CouponRejectionReason,
)
from digistore_checkout.logging import mask_code, mask_email
from digistore_checkout.models import Coupon, DiscountKind
from digistore_checkout.wire import CouponValidateRequest, CouponValidateResponse

logger = logging.getLogger(__name__)


REJECTION_MESSAGES = {
    CouponRejectionReason.UNKNOWN: "Invalid coupon code",
    CouponRejectionReason.EXPIRED: "This coupon has expired",
    CouponRejectionReason.INELIGIBLE: "This coupon is not available for your account",
    CouponRejectionReason.RATE_LIMITED: "Too many attempts, please wait a moment and try again",
    CouponRejectionReason.UNAVAILABLE: "Could not validate the coupon right now, please try again",
}


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class CouponResolver(ABC):
    """Validates promotional codes against a remote authority."""

    @abstractmethod
    async def validate(self, code: str, identity_hint: Optional[str] = None) -> Coupon:
        """
        Validate a code.

        Args:
            code: Code as typed by the buyer (normalized here)
            identity_hint: Buyer email, for one-time and first-purchase codes

        Returns:
            The Coupon the authority accepted

        Raises:
            CheckoutValidationError: empty code
            CouponRejected: the authority refused the code
        """
        pass


class BuyerHistory(ABC):
    """Answers whether a buyer identity has completed a purchase before."""

    @abstractmethod
    async def has_purchased(self, identity: str) -> bool:
        pass


def _rejection_reason(error: BoundaryError) -> CouponRejectionReason:
    if isinstance(error, BoundaryRateLimited):
        return CouponRejectionReason.RATE_LIMITED
    if isinstance(error, BoundaryUnavailable):
        return CouponRejectionReason.UNAVAILABLE

    hint = f"{error.error_code} {error.message}".lower()
    if error.status_code == 410 or "expired" in hint:
        return CouponRejectionReason.EXPIRED
    if error.status_code == 403 or "eligible" in hint or "first" in hint or "already used" in hint:
        return CouponRejectionReason.INELIGIBLE
    if error.status_code is not None and error.status_code >= 500:
        return CouponRejectionReason.UNAVAILABLE
    return CouponRejectionReason.UNKNOWN


class HttpCouponResolver(CouponResolver):
    """Coupon resolver backed by ``POST /coupons/validate``."""

    def __init__(self, client: StorefrontClient, path: str = "/coupons/validate"):
        self.client = client
        self.path = path

    async def validate(self, code: str, identity_hint: Optional[str] = None) -> Coupon:
        normalized = normalize_code(code)
        if not normalized:
            raise CheckoutValidationError("Please enter a coupon code", field="code")

        request = CouponValidateRequest(
            code=normalized,
            buyer_email=identity_hint.strip().lower() if identity_hint else None,
        )
        try:
            body = await self.client.request("POST", self.path, json=request.to_dict(), idempotent=True)
        except BoundaryError as e:
            reason = _rejection_reason(e)
            logger.warning(
                "Coupon %s rejected for %s: %s (%s)",
                mask_code(normalized), mask_email(identity_hint), reason.value, e.message,
            )
            raise CouponRejected(REJECTION_MESSAGES[reason], reason=reason) from e

        try:
            response = CouponValidateResponse.from_response(body)
        except BoundaryError as e:
            reason = CouponRejectionReason.UNAVAILABLE
            logger.warning("Coupon %s lookup returned a malformed body: %s", mask_code(normalized), e.details)
            raise CouponRejected(REJECTION_MESSAGES[reason], reason=reason) from e

        return Coupon(
            code=normalize_code(response.code) or normalized,
            discount_value=response.discount_value,
            discount_kind=DiscountKind(response.discount_kind),
            is_auto_applied=False,
        )


class HttpBuyerHistory(BuyerHistory):
    """Purchase history check backed by ``GET /orders/has-purchased``."""

    def __init__(self, client: StorefrontClient, path: str = "/orders/has-purchased"):
        self.client = client
        self.path = path

    async def has_purchased(self, identity: str) -> bool:
        body = await self.client.request(
            "GET",
            self.path,
            params={"email": identity.strip().lower()},
            idempotent=True,
        )
        # Bare JSON booleans arrive wrapped as {"data": ...}
        for key in ("data", "hasPurchased", "has_purchased"):
            if isinstance(body.get(key), bool):
                return body[key]
        raise BoundaryError("Malformed response from server", error_code="MALFORMED_RESPONSE")
