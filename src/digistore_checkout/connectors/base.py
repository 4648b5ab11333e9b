"""Base payment provider connector interface."""
from __future__ import annotations

from abc import ABC, abstractmethod

from digistore_checkout.models import OrderIntent


class PaymentProviderConnector(ABC):
    """Abstract interface for payment provider connectors."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def create_order(self, intent: OrderIntent) -> str:
        """
        Create a provider-side order for ``intent.total_amount``.

        Args:
            intent: OrderIntent carrying the amount to charge

        Returns:
            The provider's order identifier
        """
        pass

    @abstractmethod
    async def capture_order(self, provider_order_id: str, intent: OrderIntent) -> str:
        """
        Capture an order the buyer has approved and create the store order.

        Args:
            provider_order_id: Identifier returned by create_order
            intent: OrderIntent with items, billing info and discounts

        Returns:
            The store's order identifier
        """
        pass
