# -*- coding: utf-8 -*-
"""
Admin Routes.

Platform reporting, manual payout bookkeeping and a NOWPayments pass-through
for crypto payouts. Every endpoint requires an admin session.
"""
from flask import Blueprint, jsonify, request

from secret_message.infra.log import get_logger
from secret_message.models.payment import Payment
from secret_message.models.user import User
from secret_message.schemas.account_schemas import (
    AdminPayoutSchema,
    CryptoPayoutSchema,
    CryptoVerifySchema,
)
from secret_message.services import admin as admin_service
from secret_message.services.auth import admin_required, current_user
from secret_message.services.nowpayments import NowPaymentsClient

admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')
logger = get_logger(__name__)


def _json():
    return request.get_json(silent=True) or {}


@admin_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    users = User.query.order_by(User.created_at.desc()).all()
    return jsonify([u.to_dict() for u in users]), 200


@admin_bp.route('/payments', methods=['GET'])
@admin_required
def list_payments():
    payments = Payment.query.order_by(Payment.created_at.desc()).all()
    return jsonify([p.to_dict() for p in payments]), 200


@admin_bp.route('/analytics', methods=['GET'])
@admin_required
def analytics():
    return jsonify(admin_service.get_analytics()), 200


@admin_bp.route('/payouts/pending', methods=['GET'])
@admin_required
def pending_payouts():
    return jsonify(admin_service.get_pending_payouts()), 200


@admin_bp.route('/payouts', methods=['POST'])
@admin_required
def create_payout():
    data = AdminPayoutSchema().load(_json())
    payout = admin_service.record_payout(current_user(), data)
    return jsonify(payout.to_dict()), 201


@admin_bp.route('/payouts/history', methods=['GET'])
@admin_required
def payout_history():
    return jsonify([p.to_dict() for p in admin_service.payout_history()]), 200


# --------------------------------------------------------------------------- #
# NOWPayments pass-through
# --------------------------------------------------------------------------- #
@admin_bp.route('/crypto/balance', methods=['GET'])
@admin_required
def crypto_balance():
    return jsonify(NowPaymentsClient().get_balance()), 200


@admin_bp.route('/crypto/payouts', methods=['POST'])
@admin_required
def crypto_create_payout():
    data = CryptoPayoutSchema().load(_json())
    result = NowPaymentsClient().create_payout(**data)
    logger.info("Crypto payout requested", admin_id=current_user().id, currency=data['currency'])
    return jsonify(result), 201


@admin_bp.route('/crypto/payouts/<payout_id>/verify', methods=['POST'])
@admin_required
def crypto_verify_payout(payout_id):
    data = CryptoVerifySchema().load(_json())
    return jsonify(NowPaymentsClient().verify_payout(payout_id, data['verification_code'])), 200


@admin_bp.route('/crypto/payouts/<payout_id>', methods=['GET'])
@admin_required
def crypto_payout_status(payout_id):
    return jsonify(NowPaymentsClient().get_payout_status(payout_id)), 200
