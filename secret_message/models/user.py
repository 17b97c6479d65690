# secret_message/models/user.py
import uuid

from werkzeug.security import generate_password_hash, check_password_hash

from secret_message.infra.db import db
from secret_message.utils.clock import utcnow, isoformat

PAYOUT_METHODS = ("bank", "crypto", "paypal", "venmo", "cashapp", "zelle")
PARTNER_STATUSES = ("active", "suspended")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # magic-link-only accounts have no password
    password_hash = db.Column(db.String(255), nullable=True)

    payout_method = db.Column(db.String(50), nullable=True)
    payout_address = db.Column(db.Text, nullable=True)

    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    # partner widget settings (theme + pricing), see routes/widget.py
    widget_config = db.Column(db.JSON, nullable=True)
    partner_status = db.Column(db.String(20), default="active", nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    messages = db.relationship("Message", back_populates="owner", lazy="dynamic")

    # --- password helpers ---
    def set_password(self, raw_password: str):
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, raw_password)

    # --- safe serializer ---
    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "payout_method": self.payout_method,
            "payout_address": self.payout_address,
            "is_admin": self.is_admin,
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.email}>"
