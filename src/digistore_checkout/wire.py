"""Request and response bodies exchanged with the storefront backend."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from digistore_checkout.exceptions import BoundaryError
from digistore_checkout.models import (
    BillingInfo,
    CartLineItem,
    DiscountKind,
    OrderIntent,
)


class WireModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_response(cls, body: Any):
        """Validate a response body; a body that does not fit raises BoundaryError."""
        try:
            return cls.model_validate(body)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) or "body" for err in e.errors()})
            raise BoundaryError(
                "Malformed response from server",
                error_code="MALFORMED_RESPONSE",
                details={"fields": fields},
            ) from e


# =============================================================================
# Requests
# =============================================================================

class WireLineItem(WireModel):
    product_id: str
    vendor_id: Optional[str] = None
    name: Optional[str] = None
    quantity: int
    price: Decimal
    license: str

    @classmethod
    def from_item(cls, item: CartLineItem) -> "WireLineItem":
        return cls(
            product_id=item.product_ref,
            vendor_id=item.vendor_ref,
            name=item.name,
            quantity=item.quantity,
            price=item.unit_price,
            license=item.license_tier.value.upper(),
        )


class WireBillingInfo(WireModel):
    email: str
    first_name: str
    last_name: str
    country: Optional[str] = None

    @classmethod
    def from_billing(cls, billing: BillingInfo) -> "WireBillingInfo":
        return cls(
            email=billing.email.strip(),
            first_name=billing.first_name.strip(),
            last_name=billing.last_name.strip(),
            country=billing.country,
        )


class CouponValidateRequest(WireModel):
    code: str
    buyer_email: Optional[str] = None


class GiftCardValidateRequest(WireModel):
    code: str


class GiftCardRedeemRequest(WireModel):
    code: str
    amount: Decimal


class _DiscountFields(WireModel):
    coupon_code: Optional[str] = None
    gift_card_code: Optional[str] = None
    gift_card_amount: Optional[Decimal] = None


class FreeOrderRequest(_DiscountFields):
    items: List[WireLineItem]
    billing_info: WireBillingInfo

    @classmethod
    def from_intent(cls, intent: OrderIntent) -> "FreeOrderRequest":
        return cls(
            items=[WireLineItem.from_item(i) for i in intent.items],
            billing_info=WireBillingInfo.from_billing(intent.billing),
            **_discount_fields(intent),
        )


class ProviderOrderRequest(_DiscountFields):
    items: List[WireLineItem]
    total_amount: Decimal
    currency: str

    @classmethod
    def from_intent(cls, intent: OrderIntent) -> "ProviderOrderRequest":
        return cls(
            items=[WireLineItem.from_item(i) for i in intent.items],
            total_amount=intent.total_amount,
            currency=intent.currency,
            **_discount_fields(intent),
        )


class ProviderCaptureRequest(_DiscountFields):
    paypal_order_id: str
    items: List[WireLineItem]
    billing_info: WireBillingInfo

    @classmethod
    def from_intent(cls, provider_order_id: str, intent: OrderIntent) -> "ProviderCaptureRequest":
        return cls(
            paypal_order_id=provider_order_id,
            items=[WireLineItem.from_item(i) for i in intent.items],
            billing_info=WireBillingInfo.from_billing(intent.billing),
            **_discount_fields(intent),
        )


def _discount_fields(intent: OrderIntent) -> dict[str, Any]:
    return {
        "coupon_code": intent.coupon_code,
        "gift_card_code": intent.gift_card_code,
        "gift_card_amount": intent.gift_card_amount,
    }


# =============================================================================
# Responses
# =============================================================================

class CouponValidateResponse(WireModel):
    code: str
    discount_value: Decimal
    discount_kind: DiscountKind = Field(
        validation_alias=AliasChoices("discountKind", "discountType", "discount_kind"),
    )

    @field_validator("discount_kind", mode="before")
    @classmethod
    def normalize_kind(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v in ("fixed", "amount", "fixed-amount"):
                return DiscountKind.FIXED_AMOUNT
            if v in ("percent", "pct"):
                return DiscountKind.PERCENTAGE
        return v


class GiftCardValidateResponse(WireModel):
    balance: Decimal


class OrderCreatedResponse(WireModel):
    order_id: str = Field(validation_alias=AliasChoices("orderId", "order_id", "id"))


class ProviderOrderResponse(WireModel):
    provider_order_id: str = Field(
        validation_alias=AliasChoices("providerOrderId", "paypalOrderId", "orderID", "id"),
    )
