"""
Message Model

A paywalled message: either a text body or an uploaded file, locked behind
a one-off payment and optionally self-destructing after it is read.
"""
import hmac
import uuid

from secret_message.infra.db import db
from secret_message.utils.clock import utcnow, isoformat


def _new_slug() -> str:
    return str(uuid.uuid4())


class Message(db.Model):
    """Represents a single paywalled message"""
    __tablename__ = "messages"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = db.Column(db.String(36), unique=True, nullable=False, index=True, default=_new_slug)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.Text, nullable=False)
    recipient_identifier = db.Column(db.Text, nullable=False)

    # content: exactly one of message_body / file_url
    message_body = db.Column(db.Text, nullable=True)
    file_url = db.Column(db.Text, nullable=True)
    file_type = db.Column(db.String(100), nullable=True)
    # file name of the rendered preview under GENERATED_DIR
    image_path = db.Column(db.String(100), nullable=True)

    # set once at creation, never updated
    price = db.Column(db.Numeric(10, 2), nullable=False)

    unlocked = db.Column(db.Boolean, default=False, nullable=False)
    active = db.Column(db.Boolean, default=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=True)

    # disappearance budget
    view_count = db.Column(db.Integer, default=0, nullable=False)
    max_views = db.Column(db.Integer, nullable=True)
    first_viewed_at = db.Column(db.DateTime, nullable=True)
    delete_after_minutes = db.Column(db.Integer, nullable=True)
    delete_at = db.Column(db.DateTime, nullable=True)
    disappeared = db.Column(db.Boolean, default=False, nullable=False)

    # short-lived grant for the file/preview endpoints, rotated by every view
    access_token = db.Column(db.String(64), nullable=True)
    access_expires_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    owner = db.relationship("User", back_populates="messages")
    payments = db.relationship("Payment", back_populates="message", lazy="dynamic")

    @property
    def has_file(self) -> bool:
        return bool(self.file_url)

    def is_expired(self, now) -> bool:
        return self.expires_at is not None and self.expires_at < now

    @property
    def image_url(self):
        if not self.image_path:
            return None
        return f"/api/messages/{self.slug}/image"

    def grant_valid(self, token, now) -> bool:
        if not token or not self.access_token or self.access_expires_at is None:
            return False
        if now >= self.access_expires_at:
            return False
        return hmac.compare_digest(str(token), self.access_token)

    def to_owner_dict(self):
        """Dashboard view for the owner; never includes the body."""
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "recipient_identifier": self.recipient_identifier,
            "price": str(self.price),
            "image_url": self.image_url,
            "file_url": self.file_url,
            "file_type": self.file_type,
            "unlocked": self.unlocked,
            "active": self.active,
            "expires_at": isoformat(self.expires_at),
            "view_count": self.view_count,
            "max_views": self.max_views,
            "first_viewed_at": isoformat(self.first_viewed_at),
            "delete_after_minutes": self.delete_after_minutes,
            "delete_at": isoformat(self.delete_at),
            "disappeared": self.disappeared,
            "created_at": isoformat(self.created_at),
        }

    def to_public_dict(self):
        """Recipient view. Content references only come with a view."""
        data = {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "recipient_identifier": self.recipient_identifier,
            "price": str(self.price),
            "unlocked": self.unlocked,
            "expires_at": isoformat(self.expires_at),
            "has_file": self.has_file,
            "max_views": self.max_views,
            "delete_after_minutes": self.delete_after_minutes,
            "delete_at": isoformat(self.delete_at),
            "disappeared": self.disappeared,
            "created_at": isoformat(self.created_at),
        }
        if self.unlocked and not self.disappeared:
            data["file_type"] = self.file_type
        return data

    def __repr__(self):
        return f"<Message {self.slug}>"
