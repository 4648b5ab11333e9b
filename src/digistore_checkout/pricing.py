"""
Pure total derivation for the checkout.

Precedence is fixed: the coupon discount is taken off the subtotal first,
then the gift card covers what is left. Every stage is clamped at zero.

Usage:
    from digistore_checkout.pricing import payable_amount

    amount = payable_amount(items, coupon, gift_card)
    if amount.is_free:
        ...
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from digistore_checkout.models import (
    CartLineItem,
    Coupon,
    DiscountKind,
    GiftCard,
    LicenseTier,
    PayableAmount,
)

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    """Coerce to a 2dp Decimal, rounding half up."""
    if value is None or value == "":
        return ZERO
    return Decimal(str(value)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def price_for_license(base_price, tier: LicenseTier) -> Decimal:
    """Unit price of a product under the given license tier."""
    return money(Decimal(str(base_price)) * tier.price_multiplier)


def subtotal(items: Iterable[CartLineItem]) -> Decimal:
    return sum((item.line_total for item in items), start=ZERO)


def coupon_discount(amount: Decimal, coupon: Optional[Coupon]) -> Decimal:
    """
    Discount a coupon takes off ``amount``.

    Percentage coupons take ``amount * pct / 100`` (rounded to cents);
    fixed-amount coupons never exceed the amount they apply to.
    """
    if coupon is None or amount <= 0:
        return ZERO

    if coupon.discount_kind == DiscountKind.PERCENTAGE:
        pct = min(max(coupon.discount_value, Decimal("0")), Decimal("100"))
        return money(amount * pct / Decimal("100"))

    fixed = max(coupon.discount_value, Decimal("0"))
    return money(min(fixed, amount))


def payable_amount(
    items: Iterable[CartLineItem],
    coupon: Optional[Coupon],
    gift_card: Optional[GiftCard],
) -> PayableAmount:
    """Derive the full breakdown from current cart and gift card state."""
    sub = subtotal(items)
    discount = coupon_discount(sub, coupon)
    after_coupon = max(ZERO, sub - discount)

    gift_card_discount = ZERO
    if gift_card is not None:
        gift_card_discount = min(max(gift_card.balance, ZERO), after_coupon)

    final_total = max(ZERO, after_coupon - gift_card_discount)

    return PayableAmount(
        subtotal=sub,
        coupon_discount=discount,
        after_coupon=after_coupon,
        gift_card_discount=gift_card_discount,
        final_total=final_total,
    )
