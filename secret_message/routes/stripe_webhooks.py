# -*- coding: utf-8 -*-
"""
Stripe Webhook Handler.

Confirms unlock payments from ``checkout.session.completed`` events.
"""
import os

import stripe
from flask import Blueprint, request, jsonify

from secret_message.infra.log import get_logger
from secret_message.services.payments import handle_checkout_completed

stripe_webhooks_bp = Blueprint('stripe_webhooks', __name__)
logger = get_logger(__name__)


@stripe_webhooks_bp.route('/api/webhook/stripe', methods=['POST'])
def stripe_webhook():
    """
    Handle Stripe webhook events.

    Events handled:
    - checkout.session.completed: record the payment and unlock the message

    Every other event type is acknowledged and ignored. Redelivery of the
    same session is harmless, the ledger keeps one row per session.
    """
    payload = request.data
    sig_header = request.headers.get('Stripe-Signature')
    webhook_secret = os.getenv('STRIPE_WEBHOOK_SECRET')

    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET not configured")
        return jsonify({'error': 'Webhook not configured'}), 500

    if not sig_header:
        return jsonify({'error': 'No signature'}), 400

    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, webhook_secret
        )
    except ValueError:
        logger.error("Invalid webhook payload")
        return jsonify({'error': 'Invalid payload'}), 400
    except stripe.SignatureVerificationError:
        logger.error("Invalid webhook signature")
        return jsonify({'error': 'Invalid signature'}), 400

    event_type = event['type']
    data = event['data']['object']

    logger.info(f"Received Stripe webhook: {event_type}")

    if event_type == 'checkout.session.completed':
        handle_checkout_completed(data)
    else:
        logger.info(f"Unhandled event type: {event_type}")

    return jsonify({'received': True}), 200
