import uuid

from secret_message.infra.db import db
from secret_message.utils.clock import utcnow, isoformat


class PayoutHistory(db.Model):
    """Immutable record of a payout an admin completed for a user."""
    __tablename__ = "payout_history"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payout_method = db.Column(db.String(50), nullable=False)
    payout_address = db.Column(db.Text, nullable=False)
    admin_notes = db.Column(db.Text, nullable=True)
    completed_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": str(self.amount),
            "payout_method": self.payout_method,
            "payout_address": self.payout_address,
            "admin_notes": self.admin_notes,
            "completed_by": self.completed_by,
            "completed_at": isoformat(self.completed_at),
        }
