# secret_message/models/payment.py
import uuid

from secret_message.infra.db import db
from secret_message.utils.clock import utcnow, isoformat

PROVIDER_STRIPE = "stripe"
PROVIDER_COINBASE = "coinbase"
PROVIDER_NOWPAYMENTS = "nowpayments"
PROVIDERS = (PROVIDER_STRIPE, PROVIDER_COINBASE, PROVIDER_NOWPAYMENTS)


class Payment(db.Model):
    """Append-only ledger row for one successful unlock payment."""
    __tablename__ = "payments"
    __table_args__ = (
        db.UniqueConstraint("provider", "provider_txn_id", name="uq_payments_provider_txn"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    message_id = db.Column(db.String(36), db.ForeignKey("messages.id"), nullable=False, index=True)

    provider = db.Column(db.String(20), nullable=False, default=PROVIDER_STRIPE)
    provider_txn_id = db.Column(db.String(255), nullable=False, index=True)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    platform_fee = db.Column(db.Numeric(10, 2), nullable=False)
    sender_earnings = db.Column(db.Numeric(10, 2), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    message = db.relationship("Message", back_populates="payments")

    def to_dict(self):
        return {
            "id": self.id,
            "message_id": self.message_id,
            "provider": self.provider,
            "provider_txn_id": self.provider_txn_id,
            "amount": str(self.amount),
            "platform_fee": str(self.platform_fee),
            "sender_earnings": str(self.sender_earnings),
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<Payment {self.provider}:{self.provider_txn_id}>"
