# -*- coding: utf-8 -*-
"""
Account and Admin Request Schemas.
"""
from decimal import Decimal

from marshmallow import Schema, fields, validate, post_load, EXCLUDE

from secret_message.config import Config
from secret_message.models.user import PAYOUT_METHODS


class _EmailMixin:
    @post_load
    def normalize_email(self, data, **kwargs):
        if data.get("email"):
            data["email"] = data["email"].strip().lower()
        return data


class SignupSchema(_EmailMixin, Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(
            min=Config.MIN_PASSWORD_LENGTH,
            error=f"Password must be at least {Config.MIN_PASSWORD_LENGTH} characters",
        ),
    )


class LoginSchema(_EmailMixin, Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True, validate=validate.Length(min=1))


class MagicLinkRequestSchema(_EmailMixin, Schema):
    class Meta:
        unknown = EXCLUDE

    email = fields.Email(required=True)


class PayoutUpdateSchema(Schema):
    """Schema for an owner setting where earnings are paid."""
    class Meta:
        unknown = EXCLUDE

    payout_method = fields.Str(required=True, validate=validate.OneOf(PAYOUT_METHODS))
    payout_address = fields.Str(required=True, validate=validate.Length(min=1, max=500))


class AdminPayoutSchema(Schema):
    """Schema for recording a manual payout an admin has completed."""
    class Meta:
        unknown = EXCLUDE

    user_id = fields.Str(required=True, validate=validate.Length(min=1))
    amount = fields.Decimal(required=True, places=2, validate=validate.Range(
        min=Decimal("0.01"), error="Amount must be a positive number"))
    payout_method = fields.Str(required=True, validate=validate.OneOf(PAYOUT_METHODS))
    payout_address = fields.Str(required=True, validate=validate.Length(min=1, max=500))
    admin_notes = fields.Str(allow_none=True, load_default=None)


class CryptoPayoutSchema(Schema):
    """Schema for a NOWPayments payout request."""
    class Meta:
        unknown = EXCLUDE

    address = fields.Str(required=True, validate=validate.Length(min=1))
    currency = fields.Str(required=True, validate=validate.Length(min=1, max=20))
    amount = fields.Decimal(required=True, validate=validate.Range(min=Decimal("0"), min_inclusive=False))
    ipn_callback_url = fields.Url(allow_none=True, load_default=None)
    extra_id = fields.Str(allow_none=True, load_default=None)


class CryptoVerifySchema(Schema):
    class Meta:
        unknown = EXCLUDE

    verification_code = fields.Str(required=True, validate=validate.Length(min=1))
