# -*- coding: utf-8 -*-
"""
Message Request Schemas.

Provides Marshmallow schemas for validating message creation and owner edits.
"""
from decimal import Decimal

from marshmallow import Schema, fields, validate, validates_schema, post_load, ValidationError, EXCLUDE

from secret_message.utils.clock import parse_timestamp


class MessageCreateSchema(Schema):
    """Schema for creating a new paywalled message."""
    class Meta:
        unknown = EXCLUDE

    title = fields.Str(required=True, validate=validate.Length(min=1, max=200))
    recipient_identifier = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    message_body = fields.Str(allow_none=True, load_default=None)
    file_url = fields.Str(allow_none=True, load_default=None)
    file_type = fields.Str(allow_none=True, load_default=None, validate=validate.Length(max=100))
    price = fields.Decimal(required=True, places=2, validate=validate.Range(min=Decimal("0.01")))
    expires_at = fields.DateTime(allow_none=True, load_default=None)
    max_views = fields.Int(allow_none=True, load_default=None, validate=validate.Range(min=1))
    delete_after_minutes = fields.Int(allow_none=True, load_default=None, validate=validate.Range(min=1))
    delete_at = fields.DateTime(allow_none=True, load_default=None)

    @validates_schema
    def validate_content(self, data, **kwargs):
        body = (data.get("message_body") or "").strip()
        file_url = (data.get("file_url") or "").strip()
        if not body and not file_url:
            raise ValidationError("Provide a message_body or a file_url", field_name="message_body")
        if body and file_url:
            raise ValidationError("A message carries either a body or a file, not both", field_name="file_url")

    @post_load
    def normalize(self, data, **kwargs):
        for key in ("expires_at", "delete_at"):
            data[key] = parse_timestamp(data.get(key))
        if data.get("message_body") is not None:
            data["message_body"] = data["message_body"].strip() or None
        return data


class ToggleActiveSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    active = fields.Bool(allow_none=True, load_default=None)


class AttachFileSchema(Schema):
    """Schema for pointing a file message at an uploaded object."""
    class Meta:
        unknown = EXCLUDE

    file_url = fields.Str(required=True, validate=validate.Length(min=1))
    file_type = fields.Str(allow_none=True, load_default=None, validate=validate.Length(max=100))


class CheckoutCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    slug = fields.Str(required=True, validate=validate.Length(min=1))
