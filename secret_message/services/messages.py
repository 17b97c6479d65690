# -*- coding: utf-8 -*-
"""
Message lifecycle service.

Creation (with preview rendering and recipient notification), the unlock
gate, and view consumption against the disappearance budget. Routes call
into here and only translate results to JSON.
"""
import os
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import func, update

from secret_message.errors import Conflict, Forbidden, Gone, NotFound, ValidationFailed
from secret_message.config import Config
from secret_message.infra.db import db
from secret_message.infra.log import get_logger
from secret_message.models.magic_link import generate_token
from secret_message.models.message import Message
from secret_message.models.user import User
from secret_message.services import disappearance
from secret_message.services.email_service import get_email_service, is_valid_email
from secret_message.services.image_renderer import (
    image_file_path,
    remove_message_image,
    render_message_image,
)
from secret_message.services.metrics import get_metrics_service
from secret_message.services.object_storage import (
    ObjectNotFoundError,
    StoredObject,
    VISIBILITY_PRIVATE,
    get_object_storage,
)
from secret_message.services.urls import unlock_url
from secret_message.utils.clock import isoformat, utcnow

logger = get_logger(__name__)


# --------------------------------------------------------------------------- #
# Lookup
# --------------------------------------------------------------------------- #
def get_message_by_slug(slug: str) -> Optional[Message]:
    return Message.query.filter_by(slug=slug).first()


def get_servable_message(slug: str) -> Message:
    """Message a recipient may interact with; inactive ones do not exist."""
    message = get_message_by_slug(slug)
    if message is None or not message.active:
        raise NotFound("Message not found")
    return message


def get_owned_message(owner: User, id_or_slug: str) -> Message:
    """Resolve by id, then slug. Someone else's message is reported as missing."""
    message = db.session.get(Message, id_or_slug) or get_message_by_slug(id_or_slug)
    if message is None or message.user_id != owner.id:
        raise NotFound("Message not found")
    return message


def list_owned_messages(owner: User):
    return owner.messages.order_by(Message.created_at.desc()).all()


# --------------------------------------------------------------------------- #
# Create
# --------------------------------------------------------------------------- #
def _claim_file(owner: User, file_url: str) -> str:
    storage = get_object_storage()
    try:
        return storage.set_acl(file_url, owner=owner.id, visibility=VISIBILITY_PRIVATE)
    except ObjectNotFoundError:
        raise ValidationFailed("Uploaded file not found")


def create_message(owner: User, data: dict, source: str = "dashboard", sender_name: str = None,
                   notify: bool = True) -> Message:
    """
    Persist a new locked message for ``owner``.

    ``data`` is a loaded MessageCreateSchema payload. Preview rendering and
    the recipient email run after the insert and never fail the request.
    """
    body = data.get("message_body")
    file_url = data.get("file_url")
    if bool(body) == bool(file_url):
        raise ValidationFailed("Provide either message_body or file_url, not both")

    message = Message(
        user_id=owner.id,
        title=data["title"],
        recipient_identifier=data["recipient_identifier"],
        message_body=body,
        price=data["price"],
        expires_at=data.get("expires_at"),
        max_views=data.get("max_views"),
        delete_after_minutes=data.get("delete_after_minutes"),
        delete_at=data.get("delete_at"),
    )
    if file_url:
        message.file_url = _claim_file(owner, file_url)
        message.file_type = data.get("file_type")

    db.session.add(message)
    db.session.commit()

    logger.info("Message created", message_id=message.id, source=source, has_file=message.has_file)
    metrics = get_metrics_service()
    if metrics:
        metrics.record_message_created(source)

    if body:
        try:
            message.image_path = render_message_image(body)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error("Preview rendering failed", message_id=message.id, error=str(e))

    if notify and is_valid_email(message.recipient_identifier):
        _notify_recipient(message, sender_name=sender_name)

    return message


def _notify_recipient(message: Message, sender_name: str = None) -> bool:
    try:
        return get_email_service().send_message_notification(
            recipient_email=message.recipient_identifier,
            title=message.title,
            price=message.price,
            unlock_url=unlock_url(message.slug),
            sender_name=sender_name,
        )
    except Exception as e:
        logger.error("Recipient notification failed", message_id=message.id, error=str(e))
        return False


def resend_notification(owner: User, id_or_slug: str, now: datetime = None) -> bool:
    """Manual resend by the owner. Refused once the content is gone or doomed."""
    now = now or utcnow()
    message = get_owned_message(owner, id_or_slug)

    if not is_valid_email(message.recipient_identifier):
        raise ValidationFailed("Recipient is not an email address")
    if message.disappeared or (message.delete_at is not None and now >= message.delete_at):
        raise Gone("Message has disappeared")

    sent = _notify_recipient(message)
    logger.info("Notification resent", message_id=message.id, sent=sent)
    return sent


# --------------------------------------------------------------------------- #
# Owner actions
# --------------------------------------------------------------------------- #
def toggle_active(owner: User, id_or_slug: str, active: Optional[bool] = None) -> Message:
    message = get_owned_message(owner, id_or_slug)
    message.active = (not message.active) if active is None else bool(active)
    db.session.commit()
    logger.info("Message active toggled", message_id=message.id, active=message.active)
    return message


def attach_file(owner: User, id_or_slug: str, file_url: str, file_type: str = None) -> Message:
    """Swap the uploaded file of a still-locked file message."""
    message = get_owned_message(owner, id_or_slug)
    if message.message_body:
        raise ValidationFailed("Text messages cannot carry a file")
    if message.unlocked:
        raise ValidationFailed("Cannot replace the file of an unlocked message")

    message.file_url = _claim_file(owner, file_url)
    if file_type:
        message.file_type = file_type
    db.session.commit()
    return message


# --------------------------------------------------------------------------- #
# Unlock gate
# --------------------------------------------------------------------------- #
def mark_unlocked(message_id: str) -> bool:
    """Flip unlocked false -> true. Returns True only for the call that did it."""
    result = db.session.execute(
        update(Message)
        .where(Message.id == message_id, Message.unlocked.is_(False))
        .values(unlocked=True)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


# --------------------------------------------------------------------------- #
# Disappearance
# --------------------------------------------------------------------------- #
def _mark_disappeared(message: Message, reason: str):
    image_path = message.image_path
    result = db.session.execute(
        update(Message)
        .where(Message.id == message.id, Message.disappeared.is_(False))
        .values(disappeared=True, image_path=None, access_token=None, access_expires_at=None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.expire(message)

    if result.rowcount == 1:
        logger.info("Message disappeared", message_id=message.id, reason=reason)
        if image_path:
            _discard_preview(message, image_path)


def _discard_preview(message: Message, image_path: str):
    try:
        remove_message_image(image_path)
    except OSError as e:
        logger.error("Preview removal failed", message_id=message.id, error=str(e))


def _deny(message: Message, reason: str):
    metrics = get_metrics_service()
    if metrics:
        metrics.record_view_denied(reason)
    raise Gone(reason, details={"reason": reason})


def _disappeared_reason(message: Message, now: datetime) -> str:
    return disappearance.evaluate(disappearance.ViewBudget.from_message(message), now) \
        or disappearance.REASON_GONE


def sync_disappearance(message: Message, now: datetime = None) -> Optional[str]:
    """
    Persist a time-rule firing without consuming a view.

    Returns the reason when the message is (now) disappeared, else None.
    """
    now = now or utcnow()
    if message.disappeared:
        return _disappeared_reason(message, now)

    reason = disappearance.evaluate(
        disappearance.ViewBudget.from_message(message), now, count_views=False)
    if reason:
        _mark_disappeared(message, reason)
    return reason


def consume_view(slug: str, now: datetime = None) -> Tuple[Message, disappearance.ViewBudget]:
    """
    Spend one view of an unlocked message.

    The increment is a compare-and-set on the observed view_count, so
    concurrent viewers of a capped message cannot overshoot max_views; a
    lost race re-reads and re-evaluates. The same update stamps
    first_viewed_at and issues the grant that the file and preview
    endpoints require. Raises Gone once the budget is spent.
    """
    now = now or utcnow()

    for _ in range(Config.VIEW_UPDATE_ATTEMPTS):
        message = get_servable_message(slug)

        if message.disappeared:
            _deny(message, _disappeared_reason(message, now))

        budget = disappearance.ViewBudget.from_message(message)
        reason = disappearance.evaluate(budget, now)
        if reason:
            _mark_disappeared(message, reason)
            _deny(message, reason)

        if not message.unlocked:
            raise Forbidden("Message is locked")

        result = db.session.execute(
            update(Message)
            .where(
                Message.id == message.id,
                Message.view_count == budget.view_count,
                Message.disappeared.is_(False),
            )
            .values(
                view_count=Message.view_count + 1,
                first_viewed_at=func.coalesce(Message.first_viewed_at, now),
                access_token=generate_token(),
                access_expires_at=now + timedelta(seconds=Config.VIEW_GRANT_SECONDS),
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        db.session.expire(message)

        if result.rowcount == 1:
            logger.info("Message viewed", message_id=message.id, view_count=budget.view_count + 1)
            return message, disappearance.ViewBudget.from_message(message)

        logger.debug("View race lost, retrying", message_id=message.id)

    raise Conflict("Message is busy, try again")


def view_payload(message: Message, budget: disappearance.ViewBudget) -> dict:
    data = message.to_public_dict()
    data.update({
        "view_count": budget.view_count,
        "views_remaining": disappearance.views_remaining(budget),
        "first_viewed_at": isoformat(budget.first_viewed_at),
        "deletes_at": isoformat(disappearance.deletes_at(budget)),
    })
    grant = f"?grant={message.access_token}"
    if message.has_file:
        data["file_url"] = f"/api/messages/{message.slug}/file{grant}"
        data["file_type"] = message.file_type
    else:
        data["message_body"] = message.message_body
    if message.image_url:
        data["image_url"] = message.image_url + grant
    return data


def _granted_message(slug: str, grant: Optional[str], now: datetime) -> Message:
    """
    Content access for a recipient holding the grant of a recent view.

    Only ``consume_view`` hands out grants, so the view budget also bounds
    file and preview fetches: once the cap is hit no new grant is issued
    and the last one lapses after VIEW_GRANT_SECONDS.
    """
    message = get_servable_message(slug)

    reason = sync_disappearance(message, now)
    if reason:
        _deny(message, reason)
    if not message.unlocked:
        raise Forbidden("Message not unlocked")
    if not message.grant_valid(grant, now):
        raise Forbidden("View the message to access its content")
    return message


def check_file_access(slug: str, grant: Optional[str] = None,
                      now: datetime = None) -> Tuple[Message, StoredObject]:
    """File bytes for a file message under a live view grant. Spends no view."""
    now = now or utcnow()
    message = _granted_message(slug, grant, now)
    if not message.has_file:
        raise NotFound("No file attached to this message")

    try:
        obj = get_object_storage().get(message.file_url)
    except ObjectNotFoundError:
        raise NotFound("File not found")
    return message, obj


def check_image_access(slug: str, grant: Optional[str] = None, viewer: Optional[User] = None,
                       now: datetime = None) -> str:
    """
    Path of the rendered preview. The owner needs no grant; anyone else
    goes through the same gate as the file endpoint.
    """
    now = now or utcnow()
    message = get_message_by_slug(slug)
    if message is None or viewer is None or message.user_id != viewer.id:
        message = _granted_message(slug, grant, now)

    if not message.image_path:
        raise NotFound("No preview for this message")
    path = image_file_path(message.image_path)
    if not os.path.isfile(path):
        raise NotFound("Preview not found")
    return path
