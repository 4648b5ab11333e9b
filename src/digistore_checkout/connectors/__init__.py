"""Payment provider connector implementations."""
from digistore_checkout.connectors.base import PaymentProviderConnector
from digistore_checkout.connectors.paypal import PayPalConnector

__all__ = [
    "PaymentProviderConnector",
    "PayPalConnector",
]
