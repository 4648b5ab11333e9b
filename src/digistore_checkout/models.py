"""Checkout data models."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


# Gift card denominations offered by the storefront
GIFT_CARD_AMOUNTS = (10, 25, 50, 100, 200)

DEFAULT_CURRENCY = "USD"


class LicenseTier(str, Enum):
    """License a digital product is sold under."""
    PERSONAL = "personal"
    COMMERCIAL = "commercial"
    EXTENDED = "extended"

    @property
    def price_multiplier(self) -> int:
        return _LICENSE_MULTIPLIERS[self]


_LICENSE_MULTIPLIERS = {
    LicenseTier.PERSONAL: 1,
    LicenseTier.COMMERCIAL: 3,
    LicenseTier.EXTENDED: 5,
}


class DiscountKind(str, Enum):
    """How a coupon's discount value is interpreted."""
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class CouponSlotState(str, Enum):
    """State of the single coupon slot on the cart."""
    EMPTY = "empty"
    AUTO_APPLIED = "auto_applied"
    MANUAL = "manual"


class CheckoutState(str, Enum):
    """Lifecycle of one checkout session."""
    IDLE = "idle"
    BUILDING = "building"
    SETTLING = "settling"
    COMPLETED = "completed"


class SettlementPath(str, Enum):
    """Which settlement boundary a checkout will use."""
    FREE = "free"
    PAID = "paid"


@dataclass(frozen=True)
class LineKey:
    """Identity of a cart line: the same product under another license is a separate line."""
    product_ref: str
    license_tier: LicenseTier


@dataclass
class CartLineItem:
    """A product in the cart."""
    product_ref: str
    unit_price: Decimal
    quantity: int = 1
    license_tier: LicenseTier = LicenseTier.PERSONAL
    name: Optional[str] = None
    vendor_ref: Optional[str] = None

    @property
    def key(self) -> LineKey:
        return LineKey(self.product_ref, self.license_tier)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_ref": self.product_ref,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "license_tier": self.license_tier.value,
            "name": self.name,
            "vendor_ref": self.vendor_ref,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLineItem":
        return cls(
            product_ref=data["product_ref"],
            unit_price=Decimal(str(data["unit_price"])),
            quantity=int(data.get("quantity", 1)),
            license_tier=LicenseTier(data.get("license_tier", LicenseTier.PERSONAL.value)),
            name=data.get("name"),
            vendor_ref=data.get("vendor_ref"),
        )


@dataclass(frozen=True)
class Coupon:
    """A promotional discount accepted onto the cart."""
    code: str
    discount_value: Decimal
    discount_kind: DiscountKind
    is_auto_applied: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "discount_value": str(self.discount_value),
            "discount_kind": self.discount_kind.value,
            "is_auto_applied": self.is_auto_applied,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coupon":
        return cls(
            code=data["code"],
            discount_value=Decimal(str(data["discount_value"])),
            discount_kind=DiscountKind(data["discount_kind"]),
            is_auto_applied=bool(data.get("is_auto_applied", False)),
        )


@dataclass(frozen=True)
class GiftCard:
    """
    A gift card applied to the checkout.

    The balance is a snapshot taken at validation time; the ledger stays the
    authority for what is actually debited.
    """
    code: str
    balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "balance": str(self.balance)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GiftCard":
        return cls(code=data["code"], balance=Decimal(str(data["balance"])))


@dataclass(frozen=True)
class BillingInfo:
    """Buyer identity collected on the checkout form."""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    country: Optional[str] = None

    def missing_fields(self) -> List[str]:
        """Names of required fields that are blank."""
        return [
            name for name in ("email", "first_name", "last_name")
            if not getattr(self, name).strip()
        ]


@dataclass(frozen=True)
class PayableAmount:
    """
    Derived totals for the current cart and gift card.

    Built on demand by ``pricing.payable_amount``; never stored.
    """
    subtotal: Decimal
    coupon_discount: Decimal
    after_coupon: Decimal
    gift_card_discount: Decimal
    final_total: Decimal

    @property
    def is_free(self) -> bool:
        return self.final_total == 0


@dataclass(frozen=True)
class OrderIntent:
    """Snapshot of one settlement attempt. Built fresh per attempt."""
    items: tuple[CartLineItem, ...]
    billing: Optional[BillingInfo]
    total_amount: Decimal
    currency: str = DEFAULT_CURRENCY
    coupon_code: Optional[str] = None
    gift_card_code: Optional[str] = None
    gift_card_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class CouponApplyResult:
    """Outcome of an apply-coupon action, ready to show to the buyer."""
    success: bool
    message: str
    coupon: Optional[Coupon] = None
    reason: Optional[str] = None
    stale: bool = False


@dataclass(frozen=True)
class GiftCardApplyResult:
    """Outcome of an apply-gift-card action."""
    success: bool
    message: str
    gift_card: Optional[GiftCard] = None
    reason: Optional[str] = None
    stale: bool = False


@dataclass(frozen=True)
class RedemptionOutcome:
    """Result of a best-effort gift card debit."""
    code: str
    amount: Decimal
    succeeded: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class SettlementOutcome:
    """Outcome of a settlement attempt, ready to show to the buyer."""
    success: bool
    message: str
    order_id: Optional[str] = None
    error_code: Optional[str] = None
    redemption: Optional[RedemptionOutcome] = None
    missing_fields: List[str] = field(default_factory=list)
