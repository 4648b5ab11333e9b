"""
Tests for request/response bodies and error payloads.
"""
from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from digistore_checkout.exceptions import (
    BoundaryError,
    CouponRejected,
    CouponRejectionReason,
    SettlementInProgress,
)
from digistore_checkout.models import (
    BillingInfo,
    CartLineItem,
    Coupon,
    DiscountKind,
    LicenseTier,
    OrderIntent,
)
from digistore_checkout.wire import (
    CouponValidateResponse,
    FreeOrderRequest,
    OrderCreatedResponse,
    ProviderCaptureRequest,
    ProviderOrderRequest,
    ProviderOrderResponse,
)


@pytest.fixture
def intent():
    return OrderIntent(
        items=(
            CartLineItem(
                product_ref="prod_1",
                unit_price=Decimal("30.00"),
                quantity=2,
                license_tier=LicenseTier.COMMERCIAL,
                name="UI Kit",
                vendor_ref="vendor_9",
            ),
        ),
        billing=BillingInfo(email=" buyer@example.com ", first_name="Ada", last_name="Lovelace"),
        total_amount=Decimal("14.00"),
        currency="USD",
        coupon_code="WELCOME30",
        gift_card_code="AAAA-BBBB-CCCC-DDDD",
        gift_card_amount=Decimal("28.00"),
    )


class TestRequests:
    """Tests for outgoing bodies."""

    def test_free_order_body(self, intent):
        body = FreeOrderRequest.from_intent(intent).to_dict()

        assert body == {
            "items": [{
                "productId": "prod_1",
                "vendorId": "vendor_9",
                "name": "UI Kit",
                "quantity": 2,
                "price": "30.00",
                "license": "COMMERCIAL",
            }],
            "billingInfo": {"email": "buyer@example.com", "firstName": "Ada", "lastName": "Lovelace"},
            "couponCode": "WELCOME30",
            "giftCardCode": "AAAA-BBBB-CCCC-DDDD",
            "giftCardAmount": "28.00",
        }

    def test_provider_order_body_carries_total(self, intent):
        body = ProviderOrderRequest.from_intent(intent).to_dict()

        assert body["totalAmount"] == "14.00"
        assert body["currency"] == "USD"
        assert "billingInfo" not in body

    def test_capture_body(self, intent):
        body = ProviderCaptureRequest.from_intent("PAYPAL-1", intent).to_dict()

        assert body["paypalOrderId"] == "PAYPAL-1"
        assert body["billingInfo"]["lastName"] == "Lovelace"

    def test_omits_absent_discounts(self, intent):
        bare = OrderIntent(items=intent.items, billing=intent.billing, total_amount=Decimal("60.00"))

        body = FreeOrderRequest.from_intent(bare).to_dict()

        assert "couponCode" not in body
        assert "giftCardCode" not in body


class TestResponses:
    """Tests for incoming bodies."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("percentage", DiscountKind.PERCENTAGE),
            ("PERCENT", DiscountKind.PERCENTAGE),
            ("fixed_amount", DiscountKind.FIXED_AMOUNT),
            ("fixed", DiscountKind.FIXED_AMOUNT),
        ],
    )
    def test_coupon_discount_kind(self, raw, expected):
        response = CouponValidateResponse.model_validate(
            {"code": "X", "discountValue": "10", "discountType": raw}
        )
        assert DiscountKind(response.discount_kind) == expected

    def test_coupon_unknown_kind(self):
        with pytest.raises(ValidationError):
            CouponValidateResponse.model_validate({"code": "X", "discountValue": "10", "discountType": "bogo"})

    @pytest.mark.parametrize("key", ["orderId", "order_id", "id"])
    def test_order_id_aliases(self, key):
        assert OrderCreatedResponse.model_validate({key: "ord_1"}).order_id == "ord_1"

    @pytest.mark.parametrize("key", ["providerOrderId", "paypalOrderId", "orderID", "id"])
    def test_provider_order_id_aliases(self, key):
        assert ProviderOrderResponse.model_validate({key: "PP-1"}).provider_order_id == "PP-1"

    def test_from_response_wraps_validation_error(self):
        with pytest.raises(BoundaryError) as exc_info:
            OrderCreatedResponse.from_response({"ok": True})

        assert exc_info.value.error_code == "MALFORMED_RESPONSE"
        assert exc_info.value.details["fields"]
        assert isinstance(exc_info.value.__cause__, ValidationError)


class TestModels:
    """Tests for domain model helpers."""

    def test_billing_missing_fields(self):
        billing = BillingInfo(email="a@b.c", first_name=" ", last_name="")
        assert billing.missing_fields() == ["first_name", "last_name"]

    def test_coupon_dict_round_trip(self):
        coupon = Coupon("SAVE10", Decimal("10"), DiscountKind.PERCENTAGE, is_auto_applied=True)
        assert Coupon.from_dict(coupon.to_dict()) == coupon


class TestErrorPayloads:
    """Tests for exception payloads."""

    def test_rejection_to_dict(self):
        error = CouponRejected("This coupon has expired", reason=CouponRejectionReason.EXPIRED)

        assert error.to_dict() == {
            "error": "COUPON_REJECTED",
            "message": "This coupon has expired",
            "details": {"reason": "expired"},
        }

    def test_settlement_in_progress_message(self):
        error = SettlementInProgress()
        assert error.message == "Your order is being processed, please wait."
        assert error.error_code == "SETTLEMENT_IN_PROGRESS"

    def test_boundary_error_validation_list(self):
        error = BoundaryError.from_response(422, {"detail": [{"loc": ["email"], "msg": "required"}]})

        assert error.error_code == "VALIDATION_ERROR"
        assert error.details["errors"][0]["msg"] == "required"
