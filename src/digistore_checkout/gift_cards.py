"""
Gift cards: ledger client and the checkout's gift card slot.

The ledger is the authority for balances and debits. The slot holds at most
one applied card with the balance seen at validation time.
"""
from __future__ import annotations

import logging
import secrets
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from digistore_checkout.client import StorefrontClient
from digistore_checkout.config import CheckoutSettings, load_settings
from digistore_checkout.exceptions import (
    BoundaryError,
    BoundaryRateLimited,
    BoundaryUnavailable,
    CheckoutValidationError,
    GiftCardRejected,
    GiftCardRejectionReason,
)
from digistore_checkout.logging import mask_code
from digistore_checkout.models import GiftCard
from digistore_checkout.persistence import SnapshotStore
from digistore_checkout.wire import (
    GiftCardRedeemRequest,
    GiftCardValidateRequest,
    GiftCardValidateResponse,
)

logger = logging.getLogger(__name__)

GIFT_CARD_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

REJECTION_MESSAGES = {
    GiftCardRejectionReason.UNKNOWN: "Invalid gift card code",
    GiftCardRejectionReason.ZERO_BALANCE: "This gift card has no remaining balance",
    GiftCardRejectionReason.INSUFFICIENT: "Insufficient gift card balance",
    GiftCardRejectionReason.ALREADY_REDEEMED: "This gift card has already been redeemed",
    GiftCardRejectionReason.UNAVAILABLE: "Could not reach the gift card service, please try again",
}


def generate_gift_card_code() -> str:
    """Generate a code like ``ABCD-EFGH-JKLM-NPQR``."""
    chars = [secrets.choice(GIFT_CARD_CODE_ALPHABET) for _ in range(16)]
    return "-".join("".join(chars[i:i + 4]) for i in range(0, 16, 4))


def normalize_gift_card_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class GiftCardLedger(ABC):
    """Remote balance authority for gift cards."""

    @abstractmethod
    async def validate(self, code: str) -> GiftCard:
        """
        Look up a card's current balance.

        Raises:
            CheckoutValidationError: empty code
            GiftCardRejected: unknown code or zero balance
        """
        pass

    @abstractmethod
    async def redeem(self, code: str, amount: Decimal) -> None:
        """
        Debit ``amount`` from the card.

        Raises:
            GiftCardRejected: insufficient balance, already redeemed, ledger unavailable
        """
        pass


def _redeem_rejection_reason(error: BoundaryError) -> GiftCardRejectionReason:
    if isinstance(error, BoundaryUnavailable):
        return GiftCardRejectionReason.UNAVAILABLE
    hint = f"{error.error_code} {error.message}".lower()
    if "insufficient" in hint or "balance" in hint:
        return GiftCardRejectionReason.INSUFFICIENT
    if "redeemed" in hint or "used" in hint or error.status_code == 409:
        return GiftCardRejectionReason.ALREADY_REDEEMED
    if error.status_code == 404:
        return GiftCardRejectionReason.UNKNOWN
    return GiftCardRejectionReason.UNAVAILABLE


class HttpGiftCardLedger(GiftCardLedger):
    """Gift card ledger backed by ``/gift-cards/validate`` and ``/gift-cards/redeem``."""

    def __init__(
        self,
        client: StorefrontClient,
        validate_path: str = "/gift-cards/validate",
        redeem_path: str = "/gift-cards/redeem",
    ):
        self.client = client
        self.validate_path = validate_path
        self.redeem_path = redeem_path

    async def validate(self, code: str) -> GiftCard:
        normalized = normalize_gift_card_code(code)
        if not normalized:
            raise CheckoutValidationError("Please enter a gift card code", field="code")

        request = GiftCardValidateRequest(code=normalized)
        try:
            body = await self.client.request(
                "POST", self.validate_path, json=request.to_dict(), idempotent=True
            )
        except BoundaryError as e:
            if isinstance(e, (BoundaryUnavailable, BoundaryRateLimited)) or (e.status_code or 0) >= 500:
                reason = GiftCardRejectionReason.UNAVAILABLE
            else:
                reason = GiftCardRejectionReason.UNKNOWN
            logger.warning(f"Gift card {mask_code(normalized)} rejected: {reason.value} ({e.message})")
            raise GiftCardRejected(REJECTION_MESSAGES[reason], reason=reason) from e

        try:
            balance = GiftCardValidateResponse.from_response(body).balance
        except BoundaryError as e:
            reason = GiftCardRejectionReason.UNAVAILABLE
            logger.warning(f"Gift card {mask_code(normalized)} lookup returned a malformed body: {e.details}")
            raise GiftCardRejected(REJECTION_MESSAGES[reason], reason=reason) from e

        if balance <= 0:
            reason = GiftCardRejectionReason.ZERO_BALANCE
            raise GiftCardRejected(REJECTION_MESSAGES[reason], reason=reason)

        return GiftCard(code=normalized, balance=balance)

    async def redeem(self, code: str, amount: Decimal) -> None:
        if amount <= 0:
            raise ValueError(f"Redemption amount must be positive, got {amount}")

        request = GiftCardRedeemRequest(code=normalize_gift_card_code(code), amount=amount)
        try:
            await self.client.request("POST", self.redeem_path, json=request.to_dict())
        except BoundaryError as e:
            reason = _redeem_rejection_reason(e)
            raise GiftCardRejected(
                e.message or REJECTION_MESSAGES[reason], reason=reason
            ) from e


class GiftCardSlot:
    """
    Holds at most one applied gift card, independent of the cart.

    Usage:
        slot = GiftCardSlot()
        slot.apply_gift_card("ABCD-EFGH-JKLM-NPQR", Decimal("25.00"))
        slot.applied_gift_card  # GiftCard(code=..., balance=Decimal("25.00"))
    """

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        settings: Optional[CheckoutSettings] = None,
    ):
        self._applied: Optional[GiftCard] = None
        self._store = store
        self.settings = settings or load_settings()

    @property
    def applied_gift_card(self) -> Optional[GiftCard]:
        return self._applied

    def apply_gift_card(self, code: str, balance: Decimal) -> GiftCard:
        """Fill the slot, replacing any previously applied card."""
        balance = Decimal(str(balance))
        if balance < 0:
            raise ValueError("Gift card balance cannot be negative")
        self._applied = GiftCard(code=normalize_gift_card_code(code), balance=balance)
        return self._applied

    def clear_applied_card(self) -> None:
        self._applied = None

    def use_balance(self, amount: Decimal) -> Decimal:
        """
        Spend from the applied card's snapshot balance.

        Returns the part of ``amount`` the card did not cover. The slot
        empties once the balance reaches zero.
        """
        if self._applied is None:
            return amount

        used = min(self._applied.balance, amount)
        remaining_balance = self._applied.balance - used
        if remaining_balance <= 0:
            self._applied = None
        else:
            self._applied = GiftCard(code=self._applied.code, balance=remaining_balance)
        return amount - used

    async def save(self) -> None:
        if self._store is None:
            return
        await self._store.set(
            self.settings.gift_card_storage_key,
            {"applied_gift_card": self._applied.to_dict() if self._applied else None},
        )

    async def load(self) -> None:
        if self._store is None:
            return
        snapshot = await self._store.get(self.settings.gift_card_storage_key)
        if not snapshot:
            return
        applied = snapshot.get("applied_gift_card")
        self._applied = GiftCard.from_dict(applied) if applied else None
