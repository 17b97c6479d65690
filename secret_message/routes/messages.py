# -*- coding: utf-8 -*-
"""
Message Routes.

Owner endpoints (create, list, toggle, attach file, resend notification) and
recipient endpoints (public view, consume a view, fetch the file or preview).
"""
from flask import Blueprint, jsonify, request, send_file

from secret_message.infra.log import get_logger
from secret_message.schemas.message_schemas import (
    AttachFileSchema,
    MessageCreateSchema,
    ToggleActiveSchema,
)
from secret_message.services import disappearance, messages as message_service
from secret_message.services.auth import current_user, login_required
from secret_message.services.payments import payments_for_owner

messages_bp = Blueprint('messages', __name__, url_prefix='/api')
logger = get_logger(__name__)


def _json():
    return request.get_json(silent=True) or {}


# --------------------------------------------------------------------------- #
# Owner
# --------------------------------------------------------------------------- #
@messages_bp.route('/messages', methods=['POST'])
@login_required
def create_message():
    data = MessageCreateSchema().load(_json())
    message = message_service.create_message(current_user(), data)
    return jsonify(message.to_owner_dict()), 201


@messages_bp.route('/messages', methods=['GET'])
@login_required
def list_messages():
    owned = message_service.list_owned_messages(current_user())
    return jsonify([m.to_owner_dict() for m in owned]), 200


@messages_bp.route('/messages/<id_or_slug>/toggle-active', methods=['PATCH'])
@login_required
def toggle_active(id_or_slug):
    data = ToggleActiveSchema().load(_json())
    message = message_service.toggle_active(current_user(), id_or_slug, data.get('active'))
    return jsonify({'success': True, 'active': message.active}), 200


@messages_bp.route('/messages/<id_or_slug>/file', methods=['PUT'])
@login_required
def attach_file(id_or_slug):
    data = AttachFileSchema().load(_json())
    message = message_service.attach_file(
        current_user(), id_or_slug, data['file_url'], data.get('file_type'))
    return jsonify({'object_path': message.file_url}), 200


@messages_bp.route('/messages/<id_or_slug>/resend-notification', methods=['POST'])
@login_required
def resend_notification(id_or_slug):
    sent = message_service.resend_notification(current_user(), id_or_slug)
    return jsonify({'success': sent, 'sent': sent}), (200 if sent else 502)


@messages_bp.route('/payments', methods=['GET'])
@login_required
def list_payments():
    return jsonify([p.to_dict() for p in payments_for_owner(current_user())]), 200


# --------------------------------------------------------------------------- #
# Recipient
# --------------------------------------------------------------------------- #
@messages_bp.route('/messages/<slug>', methods=['GET'])
def get_message(slug):
    """Public view: title, price and state. Never the content."""
    message = message_service.get_servable_message(slug)
    reason = message_service.sync_disappearance(message)

    data = message.to_public_dict()
    budget = disappearance.ViewBudget.from_message(message)
    data['views_remaining'] = disappearance.views_remaining(budget)
    if reason:
        data['disappeared_reason'] = reason
    return jsonify(data), 200


@messages_bp.route('/messages/<slug>/view', methods=['POST'])
def view_message(slug):
    """Spend one view and return the content."""
    message, budget = message_service.consume_view(slug)
    return jsonify(message_service.view_payload(message, budget)), 200


@messages_bp.route('/messages/<slug>/file', methods=['GET'])
def message_file(slug):
    message, obj = message_service.check_file_access(slug, request.args.get('grant'))
    resp = send_file(obj.full_path, mimetype=message.file_type or obj.content_type, max_age=0)
    resp.headers['Cache-Control'] = 'private, no-store'
    return resp


@messages_bp.route('/messages/<slug>/image', methods=['GET'])
def message_image(slug):
    """Rendered preview: the owner, or a recipient holding a view grant."""
    path = message_service.check_image_access(slug, request.args.get('grant'), viewer=current_user())
    resp = send_file(path, mimetype='image/png', max_age=0)
    resp.headers['Cache-Control'] = 'private, no-store'
    return resp
