"""
Pytest configuration and fixtures for checkout tests.

Remote boundaries are replaced by in-process fakes that record their calls.
A fake can be told to hold a response until the test releases it, which is
how out-of-order and concurrent scenarios are driven.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Dict, List, Optional, Union

import pytest

from digistore_checkout.cart import CartAggregate
from digistore_checkout.client import StorefrontClient
from digistore_checkout.config import CheckoutSettings
from digistore_checkout.connectors.base import PaymentProviderConnector
from digistore_checkout.coupons import BuyerHistory, CouponResolver
from digistore_checkout.exceptions import (
    CouponRejected,
    GiftCardRejected,
    GiftCardRejectionReason,
)
from digistore_checkout.gift_cards import GiftCardLedger, GiftCardSlot
from digistore_checkout.models import BillingInfo, Coupon, DiscountKind, GiftCard, OrderIntent
from digistore_checkout.orchestrator import CheckoutOrchestrator
from digistore_checkout.orders import OrderGateway

BASE_URL = "https://storefront.test/api"


class _Gates:
    """Per-key events a fake waits on before answering."""

    def __init__(self):
        self._gates: Dict[str, asyncio.Event] = {}

    def hold(self, key: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[key] = gate
        return gate

    async def wait(self, key: str) -> None:
        gate = self._gates.get(key)
        if gate is not None:
            await gate.wait()


class FakeCouponResolver(CouponResolver):
    def __init__(self, coupons: Optional[Dict[str, Union[Coupon, Exception]]] = None):
        self.coupons = dict(coupons or {})
        self.gates = _Gates()
        self.calls: List[tuple] = []

    async def validate(self, code: str, identity_hint: Optional[str] = None) -> Coupon:
        self.calls.append((code, identity_hint))
        await self.gates.wait(code)
        result = self.coupons.get(code)
        if result is None:
            raise CouponRejected("Invalid coupon code")
        if isinstance(result, Exception):
            raise result
        return result


class FakeBuyerHistory(BuyerHistory):
    def __init__(self, purchased: Optional[set] = None):
        self.purchased = set(purchased or ())
        self.gates = _Gates()
        self.error: Optional[Exception] = None
        self.calls: List[str] = []

    async def has_purchased(self, identity: str) -> bool:
        self.calls.append(identity)
        await self.gates.wait(identity)
        if self.error is not None:
            raise self.error
        return identity in self.purchased


class FakeGiftCardLedger(GiftCardLedger):
    def __init__(self, balances: Optional[Dict[str, Decimal]] = None):
        self.balances = dict(balances or {})
        self.gates = _Gates()
        self.redeem_error: Optional[Exception] = None
        self.validate_calls: List[str] = []
        self.redemptions: List[tuple] = []

    async def validate(self, code: str) -> GiftCard:
        self.validate_calls.append(code)
        await self.gates.wait(code)
        if code not in self.balances:
            raise GiftCardRejected("Invalid gift card code")
        balance = self.balances[code]
        if balance <= 0:
            raise GiftCardRejected(
                "This gift card has no remaining balance",
                reason=GiftCardRejectionReason.ZERO_BALANCE,
            )
        return GiftCard(code=code, balance=balance)

    async def redeem(self, code: str, amount: Decimal) -> None:
        self.redemptions.append((code, amount))
        if self.redeem_error is not None:
            raise self.redeem_error
        self.balances[code] = self.balances.get(code, Decimal("0")) - amount


class FakeOrderGateway(OrderGateway):
    def __init__(self, order_id: str = "order_free_1"):
        self.order_id = order_id
        self.gates = _Gates()
        self.error: Optional[Exception] = None
        self.intents: List[OrderIntent] = []

    async def create_free_order(self, intent: OrderIntent) -> str:
        self.intents.append(intent)
        await self.gates.wait("create")
        if self.error is not None:
            raise self.error
        return self.order_id


class FakeProvider(PaymentProviderConnector):
    def __init__(self, provider_order_id: str = "PAYPAL-1", order_id: str = "order_paid_1"):
        self.provider_order_id = provider_order_id
        self.order_id = order_id
        self.gates = _Gates()
        self.create_error: Optional[Exception] = None
        self.capture_error: Optional[Exception] = None
        self.created: List[OrderIntent] = []
        self.captured: List[tuple] = []

    @property
    def provider_name(self) -> str:
        return "fakepay"

    async def create_order(self, intent: OrderIntent) -> str:
        self.created.append(intent)
        await self.gates.wait("create")
        if self.create_error is not None:
            raise self.create_error
        return self.provider_order_id

    async def capture_order(self, provider_order_id: str, intent: OrderIntent) -> str:
        self.captured.append((provider_order_id, intent))
        await self.gates.wait("capture")
        if self.capture_error is not None:
            raise self.capture_error
        return self.order_id


def percent_coupon(code: str, pct: str) -> Coupon:
    return Coupon(code=code, discount_value=Decimal(pct), discount_kind=DiscountKind.PERCENTAGE)


def fixed_coupon(code: str, amount: str) -> Coupon:
    return Coupon(code=code, discount_value=Decimal(amount), discount_kind=DiscountKind.FIXED_AMOUNT)


@pytest.fixture
def settings():
    return CheckoutSettings(_env_file=None, api_base_url=BASE_URL, max_retries=2)


@pytest.fixture
def base_url():
    return BASE_URL


@pytest.fixture
async def client(settings):
    async with StorefrontClient(settings, retry_backoff=0) as client:
        yield client


@pytest.fixture
def resolver():
    return FakeCouponResolver({
        "SAVE10": percent_coupon("SAVE10", "10"),
        "HALF": percent_coupon("HALF", "50"),
        "FIVEOFF": fixed_coupon("FIVEOFF", "5"),
        "FREE100": percent_coupon("FREE100", "100"),
    })


@pytest.fixture
def buyer_history():
    return FakeBuyerHistory(purchased={"returning@example.com"})


@pytest.fixture
def cart(resolver, buyer_history, settings):
    return CartAggregate(resolver, buyer_history=buyer_history, settings=settings)


@pytest.fixture
def gift_card_slot(settings):
    return GiftCardSlot(settings=settings)


@pytest.fixture
def ledger():
    return FakeGiftCardLedger({
        "GIFT-0000-0000-0050": Decimal("50.00"),
        "GIFT-0000-0000-0005": Decimal("5.00"),
        "GIFT-0000-0000-0000": Decimal("0.00"),
    })


@pytest.fixture
def order_gateway():
    return FakeOrderGateway()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def completed_orders():
    return []


@pytest.fixture
def orchestrator(cart, gift_card_slot, ledger, order_gateway, provider, settings, completed_orders):
    return CheckoutOrchestrator(
        cart=cart,
        gift_card_slot=gift_card_slot,
        gift_card_ledger=ledger,
        order_gateway=order_gateway,
        provider=provider,
        settings=settings,
        on_completed=completed_orders.append,
    )


@pytest.fixture
def billing():
    return BillingInfo(email="buyer@example.com", first_name="Ada", last_name="Lovelace", country="GB")
