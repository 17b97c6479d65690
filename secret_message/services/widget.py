# -*- coding: utf-8 -*-
"""
Partner widget service.

Partners are users whose id is embedded in the widget script on their site.
Widget messages are plain text bodies owned by the partner.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from secret_message.config import Config
from secret_message.errors import Forbidden, NotFound, ValidationFailed
from secret_message.infra.db import db
from secret_message.models.message import Message
from secret_message.models.user import User
from secret_message.services.email_service import is_valid_email
from secret_message.services.messages import create_message
from secret_message.services.urls import unlock_url
from secret_message.utils.clock import isoformat

TAG_RE = re.compile(r"<[^>]*>")
CENT = Decimal("0.01")

DEFAULT_THEME = {
    "accent": "#7c5cfc",
    "background": "#ffffff",
    "text_color": "#1a1a2e",
    "radius": 12,
    "title": "Send a Secret Message",
    "subtitle": "Only the recipient can unlock it",
    "btn_text": "Send Secret Message",
    "footer": "",
}

# stored camelCase key -> public snake_case key
THEME_KEYS = {
    "accent": "accent",
    "background": "background",
    "textColor": "text_color",
    "radius": "radius",
    "title": "title",
    "subtitle": "subtitle",
    "btnText": "btn_text",
    "footer": "footer",
}


def sanitize(text) -> str:
    if not text:
        return ""
    return TAG_RE.sub("", str(text)).strip()


def _decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def _partner(partner_id) -> Optional[User]:
    if not partner_id:
        return None
    return db.session.get(User, str(partner_id))


def _is_suspended(partner: User) -> bool:
    return partner.partner_status == "suspended"


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _setting(value, fallback: Decimal) -> Decimal:
    """A partner price setting; missing or below one cent falls back."""
    result = _decimal(value)
    if result is None or _cents(result) <= 0:
        return fallback
    return _cents(result)


def price_bounds(partner: User):
    cfg = partner.widget_config or {}
    min_price = _setting(cfg.get("minPrice"), Config.WIDGET_MIN_PRICE)
    max_price = _setting(cfg.get("maxPrice"), Config.WIDGET_MAX_PRICE)
    default_price = _setting(cfg.get("defaultPrice"), Config.WIDGET_DEFAULT_PRICE)
    return min_price, max_price, default_price


def widget_config(partner_id: str) -> dict:
    partner = _partner(partner_id)
    if partner is None:
        raise NotFound("Partner not found")

    cfg = partner.widget_config or {}
    theme = dict(DEFAULT_THEME)
    for stored_key, public_key in THEME_KEYS.items():
        if cfg.get(stored_key) not in (None, ""):
            theme[public_key] = cfg[stored_key]

    min_price, max_price, default_price = price_bounds(partner)
    return {
        "partner_id": partner.id,
        "theme": theme,
        "pricing": {
            "default_price": float(default_price),
            "allow_custom_price": bool(cfg.get("allowCustomPrice", False)),
            "min_price": float(min_price),
            "max_price": float(max_price),
        },
        "content_flag": "standard",
        "status": "suspended" if _is_suspended(partner) else "active",
    }


def create_widget_message(payload: dict) -> dict:
    """Validate a widget submission and create the partner-owned message."""
    partner_id = payload.get("partner_id")
    content = payload.get("content")
    sender_email = payload.get("sender_email")

    if not partner_id:
        raise ValidationFailed("partner_id is required")
    if not content:
        raise ValidationFailed("content is required")

    partner = _partner(partner_id)
    if partner is None:
        raise ValidationFailed("Invalid partner_id")
    if _is_suspended(partner):
        raise Forbidden("Partner account is suspended")

    body = sanitize(content)
    if not body:
        raise ValidationFailed("Message content cannot be empty")
    if len(body) > Config.WIDGET_MAX_CONTENT:
        raise ValidationFailed(f"Message content too long (max {Config.WIDGET_MAX_CONTENT} characters)")

    if sender_email and not is_valid_email(sender_email):
        raise ValidationFailed("Invalid email format")

    min_price, max_price, default_price = price_bounds(partner)
    price = _decimal(payload.get("price"))
    price = default_price if price is None else _cents(price)
    if price <= 0 or price < min_price or price > max_price:
        raise ValidationFailed(f"Price must be between ${min_price} and ${max_price}")

    message = create_message(
        partner,
        {
            "title": Config.WIDGET_MESSAGE_TITLE,
            "recipient_identifier": sender_email or "anonymous",
            "message_body": body,
            "price": price,
        },
        source="widget",
        notify=False,
    )

    return {
        "id": message.id,
        "unlock_url": unlock_url(message.slug),
        "status": "awaiting_payment",
        "price": float(message.price),
        "created_at": isoformat(message.created_at),
    }


def message_status(id_or_slug: str) -> dict:
    message = Message.query.filter_by(slug=id_or_slug).first() or db.session.get(Message, id_or_slug)
    if message is None:
        raise NotFound("Message not found")
    return {
        "id": message.id,
        "status": "unlocked" if message.unlocked else "awaiting_payment",
        "unlocked": message.unlocked,
    }
