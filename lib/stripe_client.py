# =============================================================================
# lib/stripe_client.py - Stripe Gateway
# =============================================================================
# The only module that talks to the Stripe SDK. Covers the calls the escrow
# flow needs:
# - create_payment_intent: collect funds from the buyer onto the platform
# - transfer_to_seller:    move released funds to a Connect account
# - refund_payment:        return funds to the buyer
# - construct_webhook_event: verify a webhook signature
#
# Every SDK failure is logged in full and re-raised as PaymentProviderError
# with a sanitized message. Nothing is retried here.
#
# Usage:
#   from lib.stripe_client import StripeGateway
#   intent = StripeGateway.create_payment_intent(5000, "gbp", order_id, buyer_id)
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import stripe

from app.config import settings
from app.exceptions import InvalidInputError, PaymentProviderError
from lib.utils import sanitize_error_message

logger = logging.getLogger(__name__)


@dataclass
class PaymentIntentResult:
    """The parts of a PaymentIntent the API hands back to clients."""
    id: str
    client_secret: str
    status: str


@dataclass
class TransferResult:
    id: str
    amount: int
    currency: str


@dataclass
class RefundResult:
    id: str
    amount: int
    status: str


def is_valid_currency(currency: str | None) -> bool:
    """Check a currency code against SUPPORTED_CURRENCIES (case-insensitive)."""
    return bool(currency) and currency.lower() in settings.supported_currencies_list


class StripeGateway:
    """
    Thin wrapper over the Stripe SDK.

    All methods are class methods; the API key is applied lazily on first
    use so importing this module never needs Stripe credentials.
    """

    _configured: bool = False

    @classmethod
    def _ensure_configured(cls) -> None:
        if not cls._configured:
            stripe.api_key = settings.STRIPE_SECRET_KEY
            cls._configured = True

    @classmethod
    def _validate(cls, amount: int, currency: str) -> None:
        if not is_valid_currency(currency):
            raise InvalidInputError(
                f"Invalid currency: {currency}. Supported currencies: "
                f"{', '.join(settings.supported_currencies_list)}"
            )
        if amount <= 0:
            raise InvalidInputError("Amount must be greater than 0")

    @classmethod
    def _provider_error(cls, operation: str, error: Exception) -> PaymentProviderError:
        logger.error(f"Stripe {operation} failed: {error}")
        return PaymentProviderError(
            sanitize_error_message(error, fallback=f"Failed to {operation.replace('_', ' ')}"),
            operation=operation,
        )

    # -------------------------------------------------------------------------
    # Payment Intents
    # -------------------------------------------------------------------------

    @classmethod
    def create_payment_intent(
        cls,
        amount: int,
        currency: str,
        order_id: str,
        buyer_id: str,
        description: str | None = None,
    ) -> PaymentIntentResult:
        """
        Create a payment intent so the buyer can pay into escrow.

        Funds land on the platform account and stay there until released.

        Args:
            amount: Amount in the smallest currency unit (pence for GBP)
            currency: Currency code (gbp, eur, usd)
            order_id: Order reference stored in the intent metadata
            buyer_id: Buyer reference stored in the intent metadata
            description: Optional statement description

        Returns:
            PaymentIntentResult with the client secret for the checkout form

        Raises:
            InvalidInputError: If currency or amount is invalid
            PaymentProviderError: If Stripe rejects the call
        """
        cls._validate(amount, currency)
        cls._ensure_configured()

        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                description=description or f"Order {order_id}",
                metadata={"order_id": order_id, "buyer_id": buyer_id},
                capture_method="automatic",
            )
        except stripe.StripeError as e:
            raise cls._provider_error("create_payment_intent", e)

        logger.info(f"Created payment intent {intent.id} for order {order_id}")
        return PaymentIntentResult(
            id=intent.id,
            client_secret=intent.client_secret or "",
            status=intent.status,
        )

    @classmethod
    def retrieve_payment_intent(cls, payment_intent_id: str) -> Any:
        """Fetch a payment intent (used to verify status on manual confirmation)."""
        cls._ensure_configured()
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            raise cls._provider_error("retrieve_payment_intent", e)

    # -------------------------------------------------------------------------
    # Transfers & Refunds
    # -------------------------------------------------------------------------

    @classmethod
    def transfer_to_seller(
        cls,
        amount: int,
        currency: str,
        seller_account_id: str,
        order_id: str,
        milestone_id: str | None = None,
    ) -> TransferResult:
        """
        Transfer released escrow funds to the seller's Connect account.

        Args:
            amount: Net amount (after platform fee) in the smallest unit
            currency: Currency code
            seller_account_id: Stripe Connect account (acct_...)
            order_id: Order reference, also the transfer_group
            milestone_id: Milestone reference, if releasing a milestone

        Returns:
            TransferResult
        """
        cls._validate(amount, currency)
        cls._ensure_configured()

        metadata = {"order_id": order_id}
        if milestone_id:
            metadata["milestone_id"] = milestone_id

        try:
            transfer = stripe.Transfer.create(
                amount=amount,
                currency=currency.lower(),
                destination=seller_account_id,
                transfer_group=order_id,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            raise cls._provider_error("transfer_to_seller", e)

        logger.info(f"Transferred {amount} {currency} for order {order_id}: {transfer.id}")
        return TransferResult(id=transfer.id, amount=transfer.amount, currency=transfer.currency)

    @classmethod
    def refund_payment(
        cls,
        payment_intent_id: str,
        amount: int | None = None,
        reason: str | None = None,
        order_id: str | None = None,
    ) -> RefundResult:
        """
        Refund some or all of a payment intent.

        Args:
            payment_intent_id: The intent to refund
            amount: Amount to refund; None refunds the full charge
            reason: Free-text reason stored in metadata
            order_id: Order reference stored in metadata

        Returns:
            RefundResult
        """
        cls._ensure_configured()

        params: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "reason": "requested_by_customer",
            "metadata": {"order_id": order_id or "", "reason": (reason or "")[:500]},
        }
        if amount is not None:
            if amount <= 0:
                raise InvalidInputError("Refund amount must be greater than 0")
            params["amount"] = amount

        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            raise cls._provider_error("refund_payment", e)

        logger.info(f"Refunded payment intent {payment_intent_id}: {refund.id}")
        return RefundResult(id=refund.id, amount=refund.amount, status=refund.status)

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------

    @classmethod
    def construct_webhook_event(cls, payload: bytes, signature: str) -> Any:
        """
        Verify a webhook payload against STRIPE_WEBHOOK_SECRET.

        Raises:
            InvalidInputError: If the signature or payload is invalid
        """
        try:
            return stripe.Webhook.construct_event(
                payload, signature, settings.STRIPE_WEBHOOK_SECRET
            )
        except ValueError as e:
            logger.warning(f"Invalid webhook payload: {e}")
            raise InvalidInputError("Invalid webhook payload")
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid webhook signature: {e}")
            raise InvalidInputError("Invalid webhook signature")
