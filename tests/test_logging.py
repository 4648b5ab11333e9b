"""
Tests for digistore_checkout.logging masking helpers.
"""
from digistore_checkout.logging import (
    MASK_PATTERN,
    mask_code,
    mask_email,
    mask_sensitive_data,
    mask_value,
)


class TestMaskCode:
    """Tests for mask_code."""

    def test_keeps_last_four(self):
        assert mask_code("ABCD-EFGH-JKLM-NPQR") == "***NPQR"

    def test_short_or_empty(self):
        assert mask_code("ABCD") == MASK_PATTERN
        assert mask_code(None) == MASK_PATTERN


class TestMaskEmail:
    """Tests for mask_email."""

    def test_masks_local_part(self):
        assert mask_email("jane@example.com") == "j***@example.com"

    def test_not_an_email(self):
        assert mask_email("jane") == MASK_PATTERN
        assert mask_email(None) == MASK_PATTERN


class TestMaskValue:
    """Tests for mask_value."""

    def test_long_value(self):
        assert mask_value("abcdefghijkl") == "abcd...ijkl"

    def test_short_value(self):
        assert mask_value("abc") == MASK_PATTERN


class TestMaskSensitiveData:
    """Tests for mask_sensitive_data."""

    def test_masks_request_body(self):
        body = {
            "giftCardCode": "ABCD-EFGH-JKLM-NPQR",
            "buyerEmail": "jane@example.com",
            "totalAmount": "14.00",
            "items": [{"productId": "p1", "price": "20.00"}],
        }

        masked = mask_sensitive_data(body)

        assert masked["giftCardCode"] == "***NPQR"
        assert masked["buyerEmail"] == "j***@example.com"
        assert masked["totalAmount"] == "14.00"
        assert masked["items"] == [{"productId": "p1", "price": "20.00"}]
        assert body["giftCardCode"] == "ABCD-EFGH-JKLM-NPQR"

    def test_masks_nested_billing_email(self):
        masked = mask_sensitive_data({"billingInfo": {"email": "jane@example.com", "firstName": "Jane"}})

        assert masked["billingInfo"] == {"email": "j***@example.com", "firstName": "Jane"}

    def test_masks_inline_secrets(self):
        text = "Authorization failed for Bearer abc.def-123 with card ABCD-EFGH-JKLM-NPQR"

        masked = mask_sensitive_data(text)

        assert "abc.def-123" not in masked
        assert "Bearer ***" in masked
        assert "***NPQR" in masked

    def test_additional_fields(self):
        masked = mask_sensitive_data({"paypalOrderId": "5O190127TN364715T"}, additional_fields=["paypalOrderId"])

        assert masked["paypalOrderId"] == "***715T"
