# -*- coding: utf-8 -*-
"""
Partner Widget API (/v1).

Called by the embeddable widget script from partner sites, so CORS is open
to every origin (configured in factory.py). Every route sits behind the
per-IP limit; routes that carry a partner id also count against that
partner's limit.
"""
from flask import Blueprint, jsonify, request

from secret_message.services import widget as widget_service
from secret_message.services.rate_limiter import widget_ip_limit, widget_partner_limit

widget_bp = Blueprint('widget', __name__, url_prefix='/v1')


@widget_bp.route('/partners/<partner_id>/widget-config', methods=['GET'])
@widget_ip_limit
@widget_partner_limit
def widget_config(partner_id):
    return jsonify(widget_service.widget_config(partner_id)), 200


@widget_bp.route('/messages', methods=['POST'])
@widget_ip_limit
@widget_partner_limit
def create_message():
    payload = request.get_json(silent=True) or {}
    return jsonify(widget_service.create_widget_message(payload)), 201


@widget_bp.route('/messages/<message_id>/status', methods=['GET'])
@widget_ip_limit
def message_status(message_id):
    return jsonify(widget_service.message_status(message_id)), 200
