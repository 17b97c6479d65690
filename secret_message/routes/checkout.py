"""
Stripe Checkout routes for unlocking a message.
"""
from flask import Blueprint, jsonify, request

from secret_message.schemas.message_schemas import CheckoutCreateSchema
from secret_message.services.payments import confirm_checkout_session, create_checkout_session

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")


def _json():
    """Safely parse JSON body or return empty dict."""
    return (request.get_json(silent=True) or {}) if request.data else {}


@checkout_bp.route("/create-payment-intent", methods=["POST"])
def create_payment_intent():
    """Creates a Stripe Checkout session for the message with the given slug."""
    payload = _json()
    # older clients send the slug as messageId
    if "slug" not in payload and payload.get("messageId"):
        payload["slug"] = payload["messageId"]
    data = CheckoutCreateSchema().load(payload)

    session = create_checkout_session(data["slug"])
    return jsonify(session), 200


@checkout_bp.route("/messages/<slug>/check-payment", methods=["GET"])
def check_payment(slug):
    """Polling fallback for when the webhook is late or lost."""
    unlocked = confirm_checkout_session(slug, (request.args.get("session_id") or "").strip())
    return jsonify({"unlocked": unlocked}), 200
