# -*- coding: utf-8 -*-
"""Admin reporting: platform totals, outstanding earnings and manual payouts."""
from decimal import Decimal

from sqlalchemy import func

from secret_message.errors import NotFound
from secret_message.infra.db import db
from secret_message.infra.log import get_logger
from secret_message.models.message import Message
from secret_message.models.payment import Payment
from secret_message.models.payout import PayoutHistory
from secret_message.models.user import User

logger = get_logger(__name__)

CENT = Decimal("0.01")


def _money(value) -> str:
    return str(Decimal(str(value or 0)).quantize(CENT))


def get_analytics() -> dict:
    revenue, fees, unlocks = db.session.query(
        func.sum(Payment.amount), func.sum(Payment.platform_fee), func.count(Payment.id)
    ).one()
    payouts = db.session.query(func.sum(PayoutHistory.amount)).scalar()

    return {
        "total_revenue": _money(revenue),
        "total_platform_fees": _money(fees),
        "total_payouts": _money(payouts),
        "total_users": db.session.query(func.count(User.id)).scalar(),
        "total_messages": db.session.query(func.count(Message.id)).scalar(),
        "total_unlocks": unlocks or 0,
    }


def get_pending_payouts() -> list:
    """Every user with earnings, with what has been paid out and what is owed."""
    earnings = dict(
        db.session.query(Message.user_id, func.sum(Payment.sender_earnings))
        .join(Payment, Payment.message_id == Message.id)
        .group_by(Message.user_id)
        .all()
    )
    if not earnings:
        return []

    paid_out = dict(
        db.session.query(PayoutHistory.user_id, func.sum(PayoutHistory.amount))
        .group_by(PayoutHistory.user_id)
        .all()
    )

    result = []
    users = User.query.filter(User.id.in_(earnings.keys())).order_by(User.email).all()
    for user in users:
        total_earnings = Decimal(str(earnings.get(user.id) or 0)).quantize(CENT)
        if total_earnings <= 0:
            continue
        total_paid = Decimal(str(paid_out.get(user.id) or 0)).quantize(CENT)
        result.append({
            "user_id": user.id,
            "email": user.email,
            "payout_method": user.payout_method,
            "payout_address": user.payout_address,
            "total_earnings": str(total_earnings),
            "total_paid_out": str(total_paid),
            "pending_amount": str(total_earnings - total_paid),
        })
    return result


def record_payout(admin: User, data: dict) -> PayoutHistory:
    user = db.session.get(User, data["user_id"])
    if user is None:
        raise NotFound("User not found")

    payout = PayoutHistory(
        user_id=user.id,
        amount=data["amount"],
        payout_method=data["payout_method"],
        payout_address=data["payout_address"],
        admin_notes=data.get("admin_notes"),
        completed_by=admin.id,
    )
    db.session.add(payout)
    db.session.commit()

    logger.info("Payout recorded", payout_id=payout.id, user_id=user.id, amount=str(payout.amount),
                completed_by=admin.id)
    return payout


def payout_history():
    return PayoutHistory.query.order_by(PayoutHistory.completed_at.desc()).all()
