"""
Digistore Checkout - pricing and order settlement for the digital goods storefront.

This package turns a buyer's cart into exactly one order:
- Cart with license-tier line items and a single coupon slot
- First-purchase coupon policy
- Gift card slot and ledger redemption
- Payable amount derivation (coupon first, then gift card)
- Free-order and payment-provider settlement paths
- Duplicate-submission guard
"""

from digistore_checkout.orchestrator import (
    CheckoutOrchestrator,
    PaymentLifecycle,
    SettlementGuard,
)
from digistore_checkout.models import (
    # Core models
    BillingInfo,
    CartLineItem,
    Coupon,
    GiftCard,
    LineKey,
    OrderIntent,
    PayableAmount,
    # Enums
    CheckoutState,
    CouponSlotState,
    DiscountKind,
    LicenseTier,
    SettlementPath,
    # Results
    CouponApplyResult,
    GiftCardApplyResult,
    RedemptionOutcome,
    SettlementOutcome,
    # Constants
    DEFAULT_CURRENCY,
    GIFT_CARD_AMOUNTS,
)
from digistore_checkout.pricing import money, payable_amount, price_for_license

# Cart and coupons
from digistore_checkout.cart import CartAggregate
from digistore_checkout.coupons import (
    BuyerHistory,
    CouponResolver,
    HttpBuyerHistory,
    HttpCouponResolver,
)

# Gift cards
from digistore_checkout.gift_cards import (
    GiftCardLedger,
    GiftCardSlot,
    HttpGiftCardLedger,
    generate_gift_card_code,
)

# Orders and payment providers
from digistore_checkout.orders import HttpOrderGateway, OrderGateway
from digistore_checkout.connectors import PaymentProviderConnector, PayPalConnector

# Infrastructure
from digistore_checkout.client import StorefrontClient
from digistore_checkout.config import CheckoutSettings, load_settings
from digistore_checkout.persistence import (
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    SnapshotStore,
)
from digistore_checkout.exceptions import (
    BoundaryAuthenticationError,
    BoundaryError,
    BoundaryRateLimited,
    BoundaryUnavailable,
    CheckoutException,
    CheckoutValidationError,
    CouponRejected,
    CouponRejectionReason,
    GiftCardRejected,
    GiftCardRejectionReason,
    SettlementError,
    SettlementInProgress,
)

__version__ = "0.1.0"

__all__ = [
    # Orchestrator
    "CheckoutOrchestrator",
    "PaymentLifecycle",
    "SettlementGuard",
    # Core models
    "BillingInfo",
    "CartLineItem",
    "Coupon",
    "GiftCard",
    "LineKey",
    "OrderIntent",
    "PayableAmount",
    "CheckoutState",
    "CouponSlotState",
    "DiscountKind",
    "LicenseTier",
    "SettlementPath",
    "CouponApplyResult",
    "GiftCardApplyResult",
    "RedemptionOutcome",
    "SettlementOutcome",
    "DEFAULT_CURRENCY",
    "GIFT_CARD_AMOUNTS",
    # Pricing
    "money",
    "payable_amount",
    "price_for_license",
    # Cart and coupons
    "CartAggregate",
    "BuyerHistory",
    "CouponResolver",
    "HttpBuyerHistory",
    "HttpCouponResolver",
    # Gift cards
    "GiftCardLedger",
    "GiftCardSlot",
    "HttpGiftCardLedger",
    "generate_gift_card_code",
    # Orders and payment providers
    "HttpOrderGateway",
    "OrderGateway",
    "PaymentProviderConnector",
    "PayPalConnector",
    # Infrastructure
    "StorefrontClient",
    "CheckoutSettings",
    "load_settings",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "SnapshotStore",
    # Exceptions
    "BoundaryAuthenticationError",
    "BoundaryError",
    "BoundaryRateLimited",
    "BoundaryUnavailable",
    "CheckoutException",
    "CheckoutValidationError",
    "CouponRejected",
    "CouponRejectionReason",
    "GiftCardRejected",
    "GiftCardRejectionReason",
    "SettlementError",
    "SettlementInProgress",
]
