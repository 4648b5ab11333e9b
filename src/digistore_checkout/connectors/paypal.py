"""PayPal connector.

The storefront backend owns the PayPal credentials; this connector drives
the order lifecycle through the backend's payment endpoints.
"""
from __future__ import annotations

import logging

from digistore_checkout.client import StorefrontClient
from digistore_checkout.connectors.base import PaymentProviderConnector
from digistore_checkout.models import OrderIntent
from digistore_checkout.wire import (
    OrderCreatedResponse,
    ProviderCaptureRequest,
    ProviderOrderRequest,
    ProviderOrderResponse,
)

logger = logging.getLogger(__name__)


class PayPalConnector(PaymentProviderConnector):
    """PayPal payment connector."""

    def __init__(
        self,
        client: StorefrontClient,
        create_path: str = "/payments/paypal/create-order",
        capture_path: str = "/payments/paypal/capture-order",
    ):
        self.client = client
        self.create_path = create_path
        self.capture_path = capture_path

    @property
    def provider_name(self) -> str:
        return "paypal"

    async def create_order(self, intent: OrderIntent) -> str:
        """Create a PayPal order through the backend."""
        request = ProviderOrderRequest.from_intent(intent)
        body = await self.client.request("POST", self.create_path, json=request.to_dict())
        provider_order_id = ProviderOrderResponse.from_response(body).provider_order_id
        logger.info(
            f"PayPal order {provider_order_id} created for "
            f"{intent.total_amount} {intent.currency}"
        )
        return provider_order_id

    async def capture_order(self, provider_order_id: str, intent: OrderIntent) -> str:
        """Capture an approved PayPal order through the backend."""
        request = ProviderCaptureRequest.from_intent(provider_order_id, intent)
        body = await self.client.request("POST", self.capture_path, json=request.to_dict())
        return OrderCreatedResponse.from_response(body).order_id
