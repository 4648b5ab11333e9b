"""Free-order creation boundary."""
from __future__ import annotations

from abc import ABC, abstractmethod

from digistore_checkout.client import StorefrontClient
from digistore_checkout.models import OrderIntent
from digistore_checkout.wire import FreeOrderRequest, OrderCreatedResponse


class OrderGateway(ABC):
    """Creates orders that need no payment."""

    @abstractmethod
    async def create_free_order(self, intent: OrderIntent) -> str:
        """Create the order and return its identifier."""
        pass


class HttpOrderGateway(OrderGateway):
    """Order gateway backed by ``POST /payments/free-order``."""

    def __init__(self, client: StorefrontClient, path: str = "/payments/free-order"):
        self.client = client
        self.path = path

    async def create_free_order(self, intent: OrderIntent) -> str:
        request = FreeOrderRequest.from_intent(intent)
        body = await self.client.request("POST", self.path, json=request.to_dict())
        return OrderCreatedResponse.from_response(body).order_id
