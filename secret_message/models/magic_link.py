import secrets
import uuid
from datetime import timedelta

from secret_message.infra.db import db
from secret_message.utils.clock import utcnow


def generate_token() -> str:
    return secrets.token_hex(32)


class MagicLink(db.Model):
    """Single-use sign-in token emailed to a user."""
    __tablename__ = "magic_links"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), nullable=False, index=True)
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    @classmethod
    def issue(cls, email: str, ttl_minutes: int) -> "MagicLink":
        return cls(
            email=email,
            token=generate_token(),
            expires_at=utcnow() + timedelta(minutes=ttl_minutes),
        )

    def is_expired(self, now) -> bool:
        return now > self.expires_at
