# -*- coding: utf-8 -*-
"""
Unlock payments: Stripe Checkout sessions, the payment ledger and the
webhook / polling confirmation paths that feed it.

Both confirmation paths end in ``record_payment``, which is idempotent per
(provider, provider_txn_id); whichever arrives first writes the row and
unlocks the message, the other is a no-op.
"""
import os
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

import stripe
from sqlalchemy.exc import IntegrityError

from secret_message.config import Config
from secret_message.errors import Gone, NotFound, UpstreamError, ValidationFailed
from secret_message.infra.db import db
from secret_message.infra.log import get_logger
from secret_message.models.message import Message
from secret_message.models.payment import Payment, PROVIDER_STRIPE
from secret_message.services.messages import get_servable_message, mark_unlocked, sync_disappearance
from secret_message.services.metrics import get_metrics_service
from secret_message.services.urls import get_base_url
from secret_message.utils.clock import utcnow

logger = get_logger(__name__)

CENT = Decimal("0.01")


def to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def calculate_platform_fee(amount) -> Tuple[Decimal, Decimal]:
    """
    Split a payment into (platform_fee, sender_earnings).

    Fee is a flat part plus a percentage, worked in whole cents and never more
    than the amount itself, so the two parts always sum to the amount.
    """
    amount_cents = to_cents(amount)
    pct_cents = int((Decimal(amount_cents) * Config.PLATFORM_FEE_RATE).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP))
    fee_cents = min(Config.PLATFORM_FEE_FLAT_CENTS + pct_cents, amount_cents)
    return from_cents(fee_cents), from_cents(amount_cents - fee_cents)


# --------------------------------------------------------------------------- #
# Ledger
# --------------------------------------------------------------------------- #
def record_payment(message_id: str, provider: str, provider_txn_id: str, amount,
                   via: str = "webhook") -> Tuple[Payment, bool]:
    """
    Record one successful payment and unlock its message.

    Safe to call repeatedly for the same transaction. Returns the ledger row
    and whether this call inserted it.
    """
    created = False
    payment = Payment.query.filter_by(provider=provider, provider_txn_id=provider_txn_id).first()

    if payment is None:
        fee, earnings = calculate_platform_fee(amount)
        payment = Payment(
            message_id=message_id,
            provider=provider,
            provider_txn_id=provider_txn_id,
            amount=from_cents(to_cents(amount)),
            platform_fee=fee,
            sender_earnings=earnings,
        )
        db.session.add(payment)
        try:
            db.session.commit()
            created = True
        except IntegrityError:
            # lost the insert race to the other confirmation path
            db.session.rollback()
            payment = Payment.query.filter_by(provider=provider, provider_txn_id=provider_txn_id).one()

    unlocked_now = mark_unlocked(payment.message_id)

    logger.log_payment_event(
        "recorded" if created else "duplicate",
        message_id=payment.message_id,
        provider=provider,
        provider_txn_id=provider_txn_id,
        via=via,
        unlocked_now=unlocked_now,
    )
    if unlocked_now:
        metrics = get_metrics_service()
        if metrics:
            metrics.record_unlock(provider, via)

    return payment, created


def payments_for_owner(owner):
    return (
        Payment.query.join(Message, Payment.message_id == Message.id)
        .filter(Message.user_id == owner.id)
        .order_by(Payment.created_at.desc())
        .all()
    )


# --------------------------------------------------------------------------- #
# Stripe
# --------------------------------------------------------------------------- #
def _field(obj, key, default=None):
    """Read a key from a StripeObject or a plain dict."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def _configure_stripe():
    secret = os.getenv("STRIPE_SECRET_KEY", "").strip()
    if not secret:
        raise UpstreamError("STRIPE_SECRET_KEY missing", status_code=500)
    stripe.api_key = secret


def ensure_payable(message: Message, now=None):
    """Reject a payment attempt before any checkout session is created."""
    now = now or utcnow()
    reason = sync_disappearance(message, now)
    if reason:
        raise Gone(reason, details={"reason": reason})
    if message.unlocked:
        raise ValidationFailed("Message already unlocked")
    if message.is_expired(now):
        raise ValidationFailed("Message has expired")


def create_checkout_session(slug: str) -> dict:
    message = get_servable_message(slug)
    ensure_payable(message)
    _configure_stripe()

    base_url = get_base_url()
    try:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": Config.STRIPE_CURRENCY,
                    "product_data": {
                        "name": message.title,
                        "description": "Unlock this secret message",
                    },
                    "unit_amount": to_cents(message.price),
                },
                "quantity": 1,
            }],
            success_url=f"{base_url}/m/{message.slug}/unlocked?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/m/{message.slug}",
            metadata={"message_id": message.id, "slug": message.slug},
        )
    except stripe.StripeError as e:
        msg = getattr(e, "user_message", None) or str(e)
        logger.error("Stripe checkout session failed", message_id=message.id, error=msg)
        raise UpstreamError(f"Stripe error: {msg}")

    session_id = _field(session, "id")
    logger.log_payment_event("checkout_created", message_id=message.id, session_id=session_id)
    return {"session_id": session_id, "url": _field(session, "url")}


def handle_checkout_completed(session) -> Optional[Payment]:
    """Webhook path for ``checkout.session.completed``."""
    metadata = _field(session, "metadata", {})
    message_id = _field(metadata, "message_id")
    if not message_id:
        raise ValidationFailed("No message_id in session metadata")

    if db.session.get(Message, message_id) is None:
        raise NotFound("Message not found")

    amount_total = _field(session, "amount_total", 0)
    payment, _ = record_payment(
        message_id=message_id,
        provider=PROVIDER_STRIPE,
        provider_txn_id=_field(session, "id"),
        amount=from_cents(int(amount_total)),
        via="webhook",
    )
    return payment


def confirm_checkout_session(slug: str, session_id: str) -> bool:
    """Polling fallback: ask Stripe directly whether the session was paid."""
    if not session_id:
        raise ValidationFailed("No session ID provided")

    message = get_servable_message(slug)

    existing = Payment.query.filter_by(provider=PROVIDER_STRIPE, provider_txn_id=session_id).first()
    if existing is not None:
        if existing.message_id != message.id:
            raise NotFound("Payment not found for this message")
        mark_unlocked(message.id)
        return True

    _configure_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as e:
        msg = getattr(e, "user_message", None) or str(e)
        logger.error("Stripe session lookup failed", session_id=session_id, error=msg)
        raise UpstreamError(f"Stripe error: {msg}")

    metadata = _field(session, "metadata", {})
    if _field(metadata, "message_id") not in (None, message.id):
        raise NotFound("Payment not found for this message")

    if _field(session, "payment_status") != "paid":
        return False

    record_payment(
        message_id=message.id,
        provider=PROVIDER_STRIPE,
        provider_txn_id=_field(session, "id", session_id),
        amount=from_cents(int(_field(session, "amount_total", 0))),
        via="polling",
    )
    return True
