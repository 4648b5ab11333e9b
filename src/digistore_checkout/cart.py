"""
Cart aggregate: line items plus the single coupon slot.

The cart owns its items and at most one coupon. Totals are derived on every
read from current state; nothing derived is cached.

Coupon slot transitions:
    EMPTY -> AUTO_APPLIED   first-purchase policy, only into an empty slot
    EMPTY -> MANUAL         successful apply_coupon
    AUTO_APPLIED -> MANUAL  successful apply_coupon (manual always wins)
    any -> EMPTY            remove_coupon

Concurrent apply_coupon calls are ordered by an attempt token: only the most
recently started call may change the slot, whatever order responses arrive in.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Optional, Set

from digistore_checkout.config import CheckoutSettings, load_settings
from digistore_checkout.coupons import BuyerHistory, CouponResolver, normalize_code
from digistore_checkout.exceptions import CheckoutException, CheckoutValidationError, CouponRejected
from digistore_checkout.logging import mask_code, mask_email
from digistore_checkout.models import (
    CartLineItem,
    Coupon,
    CouponApplyResult,
    CouponSlotState,
    DiscountKind,
    LicenseTier,
    LineKey,
)
from digistore_checkout.persistence import SnapshotStore
from digistore_checkout import pricing

logger = logging.getLogger(__name__)


class CartAggregate:
    """
    Line items and the accepted coupon for one buyer session.

    Args:
        resolver: Validates manually entered coupon codes
        buyer_history: Answers the first-purchase question for the auto coupon
        settings: Checkout settings (defaults to the process settings)
        store: Optional snapshot store for persisting the cart
    """

    def __init__(
        self,
        resolver: CouponResolver,
        buyer_history: Optional[BuyerHistory] = None,
        settings: Optional[CheckoutSettings] = None,
        store: Optional[SnapshotStore] = None,
    ):
        self.resolver = resolver
        self.buyer_history = buyer_history
        self.settings = settings or load_settings()
        self._store = store

        self._items: Dict[LineKey, CartLineItem] = {}
        self._coupon: Optional[Coupon] = None

        self._coupon_attempt = 0
        self._coupon_attempts_in_flight: Set[int] = set()

        # identity -> eligible for the first-purchase coupon
        self._first_purchase_eligibility: Dict[str, bool] = {}
        self._eligibility_lookups: Dict[str, asyncio.Future] = {}

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    @property
    def items(self) -> tuple[CartLineItem, ...]:
        return tuple(replace(item) for item in self._items.values())

    def add_item(self, item: CartLineItem) -> CartLineItem:
        """Add a line, or increase the quantity of the line with the same key."""
        if item.quantity < 1:
            raise CheckoutValidationError("Quantity must be at least 1", field="quantity")
        if item.unit_price < 0:
            raise CheckoutValidationError("Price cannot be negative", field="unit_price")

        existing = self._items.get(item.key)
        if existing is not None:
            existing.quantity += item.quantity
            return replace(existing)

        self._items[item.key] = replace(item)
        return replace(item)

    def add_product(
        self,
        product_ref: str,
        base_price: Decimal,
        license_tier: LicenseTier = LicenseTier.PERSONAL,
        quantity: int = 1,
        name: Optional[str] = None,
        vendor_ref: Optional[str] = None,
    ) -> CartLineItem:
        """Add a product, pricing it for the chosen license."""
        return self.add_item(CartLineItem(
            product_ref=product_ref,
            unit_price=pricing.price_for_license(base_price, license_tier),
            quantity=quantity,
            license_tier=license_tier,
            name=name,
            vendor_ref=vendor_ref,
        ))

    def remove_item(self, key: LineKey) -> bool:
        return self._items.pop(key, None) is not None

    def update_quantity(self, key: LineKey, quantity: int) -> Optional[CartLineItem]:
        """Set a line's quantity. Zero or less removes the line."""
        if quantity <= 0:
            self.remove_item(key)
            return None

        line = self._items.get(key)
        if line is None:
            return None
        line.quantity = quantity
        return replace(line)

    def clear_cart(self) -> None:
        """Empty the line items. The coupon is left alone."""
        self._items.clear()

    def item_count(self) -> int:
        return sum(item.quantity for item in self._items.values())

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def subtotal(self) -> Decimal:
        return pricing.subtotal(self._items.values())

    def discount(self) -> Decimal:
        return pricing.coupon_discount(self.subtotal(), self._coupon)

    def total(self) -> Decimal:
        return max(pricing.ZERO, self.subtotal() - self.discount())

    # ------------------------------------------------------------------
    # Coupon slot
    # ------------------------------------------------------------------

    @property
    def coupon(self) -> Optional[Coupon]:
        return self._coupon

    @property
    def coupon_state(self) -> CouponSlotState:
        if self._coupon is None:
            return CouponSlotState.EMPTY
        if self._coupon.is_auto_applied:
            return CouponSlotState.AUTO_APPLIED
        return CouponSlotState.MANUAL

    @property
    def is_validating_coupon(self) -> bool:
        return bool(self._coupon_attempts_in_flight)

    async def apply_coupon(self, code: str, identity_hint: Optional[str] = None) -> CouponApplyResult:
        """
        Validate a code and, if accepted, put it in the coupon slot.

        A rejection leaves the slot as it was. A response that arrives after
        a newer apply_coupon (or remove_coupon) has started is discarded.
        """
        normalized = normalize_code(code)
        if not normalized:
            return CouponApplyResult(
                success=False,
                message="Please enter a coupon code",
                reason="validation",
            )

        self._coupon_attempt += 1
        attempt = self._coupon_attempt
        self._coupon_attempts_in_flight.add(attempt)

        try:
            coupon = await self.resolver.validate(normalized, identity_hint)
        except CouponRejected as e:
            if attempt != self._coupon_attempt:
                return self._stale_result(normalized)
            return CouponApplyResult(success=False, message=e.message, reason=e.reason.value)
        except CheckoutValidationError as e:
            return CouponApplyResult(success=False, message=e.message, reason="validation")
        except CheckoutException as e:
            logger.warning(f"Coupon validation failed: {e.message}")
            if attempt != self._coupon_attempt:
                return self._stale_result(normalized)
            return CouponApplyResult(
                success=False,
                message="Could not validate the coupon right now, please try again",
                reason="unavailable",
            )
        finally:
            self._coupon_attempts_in_flight.discard(attempt)

        if attempt != self._coupon_attempt:
            return self._stale_result(normalized)

        previous = self.coupon_state
        self._coupon = replace(coupon, is_auto_applied=False)
        logger.info(f"Coupon {mask_code(self._coupon.code)} applied (slot was {previous.value})")
        return CouponApplyResult(
            success=True,
            message=_describe(self._coupon),
            coupon=self._coupon,
        )

    def _stale_result(self, code: str) -> CouponApplyResult:
        logger.info(f"Discarding superseded coupon response for {mask_code(code)}")
        return CouponApplyResult(
            success=False,
            message="Superseded by a newer coupon request",
            reason="superseded",
            stale=True,
        )

    def remove_coupon(self) -> None:
        """Empty the coupon slot, auto-applied or not."""
        # In-flight applies started before the removal must not refill the slot
        self._coupon_attempt += 1
        self._coupon = None

    async def check_first_time_buyer(self, identity: Optional[str]) -> Optional[Coupon]:
        """
        Attach the first-purchase coupon if ``identity`` has never bought before.

        The remote history check runs once per identity per session; later
        calls reuse the answer. A manual coupon is never replaced. Returns the
        coupon in the slot afterwards.
        """
        if not self.settings.first_purchase_coupon_enabled or not identity:
            return self._coupon
        if self.coupon_state == CouponSlotState.MANUAL:
            return self._coupon

        identity = identity.strip().lower()
        eligible = await self._first_purchase_eligible(identity)
        if eligible is None:
            return self._coupon

        if eligible and self._coupon is None:
            self._coupon = Coupon(
                code=self.settings.first_purchase_coupon_code,
                discount_value=self.settings.first_purchase_discount_percent,
                discount_kind=DiscountKind.PERCENTAGE,
                is_auto_applied=True,
            )
            logger.info(f"First-purchase coupon auto-applied for {mask_email(identity)}")
        elif not eligible and self.coupon_state == CouponSlotState.AUTO_APPLIED:
            # Auto coupon granted to an earlier identity in this session
            self._coupon = None

        return self._coupon

    async def _first_purchase_eligible(self, identity: str) -> Optional[bool]:
        if identity in self._first_purchase_eligibility:
            return self._first_purchase_eligibility[identity]
        if self.buyer_history is None:
            return None

        lookup = self._eligibility_lookups.get(identity)
        if lookup is None:
            lookup = asyncio.ensure_future(self.buyer_history.has_purchased(identity))
            self._eligibility_lookups[identity] = lookup

        try:
            purchased = await lookup
        except CheckoutException as e:
            logger.warning(
                f"Purchase history unavailable for {mask_email(identity)}: {e.message}"
            )
            return None
        finally:
            self._eligibility_lookups.pop(identity, None)

        self._first_purchase_eligibility[identity] = not purchased
        return not purchased

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self._items.values()],
            "coupon": self._coupon.to_dict() if self._coupon else None,
        }

    async def save(self) -> None:
        if self._store is None:
            return
        await self._store.set(self.settings.cart_storage_key, self.to_dict())

    async def load(self) -> None:
        """Replace items and coupon with the stored snapshot, if there is one."""
        if self._store is None:
            return
        snapshot = await self._store.get(self.settings.cart_storage_key)
        if not snapshot:
            return

        self._items = {}
        for raw in snapshot.get("items", []):
            item = CartLineItem.from_dict(raw)
            self._items[item.key] = item
        raw_coupon = snapshot.get("coupon")
        self._coupon = Coupon.from_dict(raw_coupon) if raw_coupon else None


def _describe(coupon: Coupon) -> str:
    if coupon.discount_kind == DiscountKind.PERCENTAGE:
        return f"Coupon {coupon.code} applied: {coupon.discount_value.normalize():f}% off"
    return f"Coupon {coupon.code} applied: {pricing.money(coupon.discount_value)} off"
