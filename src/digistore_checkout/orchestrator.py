"""
Checkout orchestration: pricing, path selection and settlement.

This module turns the cart and the gift card slot into exactly one
settlement attempt at a time:
- Payable amount derivation (coupon first, then gift card)
- Free vs. payment-provider path selection
- Payment provider lifecycle hooks (create / approve / error / cancel)
- Best-effort gift card redemption ahead of order creation or capture
- Duplicate-submission guard

Usage:
    orchestrator = CheckoutOrchestrator(
        cart=cart,
        gift_card_slot=slot,
        gift_card_ledger=HttpGiftCardLedger(client),
        order_gateway=HttpOrderGateway(client),
        provider=PayPalConnector(client),
        on_completed=show_confirmation,
    )
    await orchestrator.mount(buyer_email)

    if orchestrator.settlement_path == SettlementPath.FREE:
        outcome = await orchestrator.handle_free_order(billing)
"""
from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, Union

from digistore_checkout import pricing
from digistore_checkout.cart import CartAggregate
from digistore_checkout.config import CheckoutSettings, load_settings
from digistore_checkout.connectors.base import PaymentProviderConnector
from digistore_checkout.exceptions import (
    CheckoutException,
    CheckoutValidationError,
    GiftCardRejected,
    SettlementError,
    SettlementInProgress,
)
from digistore_checkout.gift_cards import GiftCardLedger, GiftCardSlot, normalize_gift_card_code
from digistore_checkout.logging import mask_code
from digistore_checkout.models import (
    BillingInfo,
    CheckoutState,
    GiftCardApplyResult,
    OrderIntent,
    PayableAmount,
    RedemptionOutcome,
    SettlementOutcome,
    SettlementPath,
)
from digistore_checkout.orders import OrderGateway

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[str], Union[None, Awaitable[None]]]

FIELD_LABELS = {
    "email": "email",
    "first_name": "first name",
    "last_name": "last name",
}


class SettlementGuard:
    """
    Admits one settlement attempt at a time.

    ``hold()`` checks and takes the guard in one synchronous step and always
    releases it on exit, including when the body raises.
    """

    def __init__(self):
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self._held:
            logger.warning("Rejected settlement attempt while another is in progress")
            raise SettlementInProgress()
        self._held = True
        try:
            yield
        finally:
            self._held = False


class PaymentLifecycle(ABC):
    """Transition points a payment provider's button drives."""

    @abstractmethod
    async def on_create(self, billing: Optional[BillingInfo] = None) -> str:
        """Buyer clicked pay: create the provider order and return its id."""
        pass

    @abstractmethod
    async def on_approve(self, provider_order_id: str, billing: BillingInfo) -> SettlementOutcome:
        """Buyer authorized payment: capture and finalize the order."""
        pass

    @abstractmethod
    def on_error(self, error: Any) -> None:
        """Provider reported an error."""
        pass

    @abstractmethod
    def on_cancel(self) -> None:
        """Buyer closed the provider flow."""
        pass


class CheckoutOrchestrator(PaymentLifecycle):
    """
    Orchestrates checkout: cart + gift card -> payable amount -> settlement.

    Totals are recomputed from the stores at every decision point. Boundary
    failures come back as SettlementOutcome messages; the stores are only
    cleared after an order has been created.
    """

    def __init__(
        self,
        cart: CartAggregate,
        gift_card_slot: GiftCardSlot,
        gift_card_ledger: GiftCardLedger,
        order_gateway: OrderGateway,
        provider: PaymentProviderConnector,
        settings: Optional[CheckoutSettings] = None,
        on_completed: Optional[CompletionHandler] = None,
    ):
        self.cart = cart
        self.gift_card_slot = gift_card_slot
        self.gift_card_ledger = gift_card_ledger
        self.order_gateway = order_gateway
        self.provider = provider
        self.settings = settings or load_settings()
        self.on_completed = on_completed

        self.state = CheckoutState.IDLE
        self.last_error: Optional[str] = None
        self.last_order_id: Optional[str] = None

        self._guard = SettlementGuard()
        self._gift_card_attempt = 0
        # provider order id -> intent the provider order was created for
        self._provider_orders: Dict[str, OrderIntent] = {}

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def payable(self) -> PayableAmount:
        """Current breakdown, derived fresh from the cart and gift card slot."""
        return pricing.payable_amount(
            self.cart.items,
            self.cart.coupon,
            self.gift_card_slot.applied_gift_card,
        )

    @property
    def settlement_path(self) -> SettlementPath:
        return SettlementPath.FREE if self.payable().is_free else SettlementPath.PAID

    @property
    def is_processing(self) -> bool:
        return self._guard.held

    async def mount(self, buyer_email: Optional[str] = None) -> PayableAmount:
        """Enter the checkout screen and evaluate the first-purchase coupon."""
        if self.state in (CheckoutState.IDLE, CheckoutState.COMPLETED):
            self.state = CheckoutState.BUILDING
            self.last_error = None
        await self.cart.check_first_time_buyer(buyer_email)
        return self.payable()

    # ------------------------------------------------------------------
    # Gift card
    # ------------------------------------------------------------------

    async def apply_gift_card_code(self, code: str) -> GiftCardApplyResult:
        """
        Validate a gift card with the ledger and put it in the slot.

        Only the most recently started call may fill the slot; a rejection
        never clears a card that is already applied.
        """
        normalized = normalize_gift_card_code(code)
        if not normalized:
            return GiftCardApplyResult(
                success=False, message="Please enter a gift card code", reason="validation"
            )

        self._gift_card_attempt += 1
        attempt = self._gift_card_attempt

        try:
            card = await self.gift_card_ledger.validate(normalized)
        except GiftCardRejected as e:
            stale = attempt != self._gift_card_attempt
            return GiftCardApplyResult(
                success=False, message=e.message, reason=e.reason.value, stale=stale
            )
        except CheckoutValidationError as e:
            return GiftCardApplyResult(success=False, message=e.message, reason="validation")

        if attempt != self._gift_card_attempt:
            logger.info(f"Discarding superseded gift card response for {mask_code(normalized)}")
            return GiftCardApplyResult(
                success=False,
                message="Superseded by a newer gift card request",
                reason="superseded",
                stale=True,
            )

        applied = self.gift_card_slot.apply_gift_card(card.code, card.balance)
        logger.info(f"Gift card {mask_code(applied.code)} applied with balance {applied.balance}")
        return GiftCardApplyResult(
            success=True,
            message=f"Gift card applied: {pricing.money(applied.balance)} available",
            gift_card=applied,
        )

    def remove_gift_card(self) -> None:
        self._gift_card_attempt += 1
        self.gift_card_slot.clear_applied_card()

    # ------------------------------------------------------------------
    # Free path
    # ------------------------------------------------------------------

    async def handle_free_order(self, billing: BillingInfo) -> SettlementOutcome:
        """
        Settle an order whose final total is zero.

        Flow:
        1. Reject if another settlement is in progress
        2. Validate billing fields and that the total is still zero
        3. Redeem the gift card share (failure is logged, not fatal)
        4. Create the free order
        5. Clear cart, coupon and gift card; notify the confirmation handler
        """
        try:
            with self._guard.hold():
                return await self._settle_free(billing)
        except SettlementInProgress as e:
            return SettlementOutcome(success=False, message=e.message, error_code=e.error_code)

    async def _settle_free(self, billing: BillingInfo) -> SettlementOutcome:
        rejected = self._precheck(billing)
        if rejected is not None:
            return rejected

        amount = self.payable()
        if not amount.is_free:
            return self._fail(
                "This order requires payment",
                SettlementError.error_code,
            )

        self.state = CheckoutState.SETTLING
        intent = self._build_intent(billing, amount)

        redemption = await self._redeem_gift_card(intent)
        try:
            order_id = await self.order_gateway.create_free_order(intent)
        except CheckoutException as e:
            return self._fail(e.message, e.error_code, redemption)

        return await self._complete(order_id, redemption)

    # ------------------------------------------------------------------
    # Paid path (payment provider lifecycle)
    # ------------------------------------------------------------------

    async def on_create(self, billing: Optional[BillingInfo] = None) -> str:
        """
        Create the provider order for the total as it is right now.

        Raises:
            SettlementInProgress: another settlement attempt is running
            CheckoutValidationError: empty cart or missing billing fields
            SettlementError: nothing to pay, or the provider refused
        """
        with self._guard.hold():
            if not self.cart.items:
                self.last_error = "Your cart is empty"
                raise CheckoutValidationError(self.last_error, field="items")
            if billing is not None and billing.missing_fields():
                self.last_error = _missing_fields_message(billing.missing_fields())
                raise CheckoutValidationError(self.last_error, field="billing")

            amount = self.payable()
            if amount.is_free:
                self.last_error = "Nothing to pay, complete this as a free order"
                raise SettlementError(self.last_error)

            self.state = CheckoutState.SETTLING
            intent = self._build_intent(billing, amount)
            try:
                provider_order_id = await self.provider.create_order(intent)
            except CheckoutException as e:
                self._fail(e.message, e.error_code)
                raise SettlementError(
                    f"Could not start {self.provider.provider_name} payment: {e.message}",
                    details={"cause": e.error_code},
                ) from e

            self._provider_orders[provider_order_id] = intent
            logger.info(
                f"{self.provider.provider_name} order {provider_order_id} created "
                f"for {amount.final_total} {self.settings.currency}"
            )
            return provider_order_id

    async def on_approve(self, provider_order_id: str, billing: BillingInfo) -> SettlementOutcome:
        """
        Finalize an order the buyer has authorized with the provider.

        Flow:
        1. Reject if another settlement is in progress
        2. Refuse if items, coupon or gift card changed since on_create
        3. Redeem the gift card share (failure is logged, not fatal)
        4. Capture through the provider
        5. Clear cart, coupon and gift card; notify the confirmation handler

        A refusal or capture failure leaves an authorized, uncaptured provider order
        that is not voided here.
        """
        try:
            with self._guard.hold():
                return await self._settle_paid(provider_order_id, billing)
        except SettlementInProgress as e:
            return SettlementOutcome(success=False, message=e.message, error_code=e.error_code)

    async def _settle_paid(self, provider_order_id: str, billing: BillingInfo) -> SettlementOutcome:
        rejected = self._precheck(billing)
        if rejected is not None:
            return rejected

        intent = self._build_intent(billing, self.payable())
        created = self._provider_orders.get(provider_order_id)
        if created is None:
            logger.warning(f"Approving unknown provider order {provider_order_id}, using current totals")
        elif replace(created, billing=billing) != intent:
            # Items, coupon or gift card changed after the provider order was created
            logger.warning(
                f"Refusing to capture {self.provider.provider_name} order {provider_order_id}: "
                f"checkout changed after it was created"
            )
            self._provider_orders.pop(provider_order_id, None)
            return self._fail(
                "Your order changed after payment was started, please review it and pay again",
                SettlementError.error_code,
            )

        self.state = CheckoutState.SETTLING
        redemption = await self._redeem_gift_card(intent)
        try:
            order_id = await self.provider.capture_order(provider_order_id, intent)
        except CheckoutException as e:
            logger.error(
                f"Capture failed for authorized {self.provider.provider_name} order "
                f"{provider_order_id}; manual reconciliation may be required: {e.message}"
            )
            return self._fail(e.message, e.error_code, redemption)

        self._provider_orders.pop(provider_order_id, None)
        return await self._complete(order_id, redemption)

    def on_error(self, error: Any) -> None:
        logger.warning(f"{self.provider.provider_name} reported an error: {error}")
        self._provider_orders.clear()
        self.state = CheckoutState.BUILDING
        self.last_error = "Payment could not be completed, please try again"

    def on_cancel(self) -> None:
        logger.info(f"{self.provider.provider_name} payment cancelled by buyer")
        self._provider_orders.clear()
        self.state = CheckoutState.BUILDING

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _precheck(self, billing: BillingInfo) -> Optional[SettlementOutcome]:
        if not self.cart.items:
            return self._fail("Your cart is empty", CheckoutValidationError.error_code)

        missing = billing.missing_fields()
        if missing:
            outcome = self._fail(_missing_fields_message(missing), CheckoutValidationError.error_code)
            return replace(outcome, missing_fields=missing)
        return None

    def _build_intent(self, billing: Optional[BillingInfo], amount: PayableAmount) -> OrderIntent:
        coupon = self.cart.coupon
        card = self.gift_card_slot.applied_gift_card
        uses_card = card is not None and amount.gift_card_discount > 0
        return OrderIntent(
            items=self.cart.items,
            billing=billing,
            total_amount=amount.final_total,
            currency=self.settings.currency,
            coupon_code=coupon.code if coupon else None,
            gift_card_code=card.code if uses_card else None,
            gift_card_amount=amount.gift_card_discount if uses_card else None,
        )

    async def _redeem_gift_card(self, intent: OrderIntent) -> Optional[RedemptionOutcome]:
        """Debit the gift card share named in the intent. Never blocks settlement."""
        code, amount = intent.gift_card_code, intent.gift_card_amount
        if code is None or not amount:
            return None

        try:
            await self.gift_card_ledger.redeem(code, amount)
        except CheckoutException as e:
            logger.error(
                f"Gift card {mask_code(code)} redemption of {amount} "
                f"failed, continuing settlement: {e.message}"
            )
            return RedemptionOutcome(code=code, amount=amount, succeeded=False, error=e.message)

        logger.info(f"Gift card {mask_code(code)} redeemed for {amount}")
        return RedemptionOutcome(code=code, amount=amount, succeeded=True)

    def _fail(
        self,
        message: str,
        error_code: Optional[str] = None,
        redemption: Optional[RedemptionOutcome] = None,
    ) -> SettlementOutcome:
        logger.warning(f"Settlement failed ({error_code}): {message}")
        self.state = CheckoutState.BUILDING
        self.last_error = message
        return SettlementOutcome(
            success=False,
            message=message,
            error_code=error_code,
            redemption=redemption,
        )

    async def _complete(
        self,
        order_id: str,
        redemption: Optional[RedemptionOutcome],
    ) -> SettlementOutcome:
        """Record a created order. Nothing after this point may turn it into a failure."""
        self.state = CheckoutState.COMPLETED
        self.last_error = None
        self.last_order_id = order_id
        logger.info(f"Order {order_id} completed")

        self.cart.clear_cart()
        self.cart.remove_coupon()
        self.remove_gift_card()
        try:
            await self.cart.save()
            await self.gift_card_slot.save()
        except Exception as e:
            logger.error(f"Could not persist cleared checkout after order {order_id}: {e}", exc_info=True)

        if self.on_completed is not None:
            try:
                result = self.on_completed(order_id)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Completion handler failed for order {order_id}: {e}", exc_info=True)

        return SettlementOutcome(
            success=True,
            message="Order completed",
            order_id=order_id,
            redemption=redemption,
        )


def _missing_fields_message(missing: list[str]) -> str:
    labels = ", ".join(FIELD_LABELS.get(name, name) for name in missing)
    return f"Please fill in your {labels}"
