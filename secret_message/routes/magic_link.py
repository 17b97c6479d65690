"""
Magic Link Sign-in
Emails a single-use token that signs the holder in (creating the account on first use).
"""

from flask import Blueprint, jsonify, request
from sqlalchemy import update

from secret_message.config import Config
from secret_message.errors import ValidationFailed
from secret_message.infra.db import db
from secret_message.infra.log import get_logger
from secret_message.models.magic_link import MagicLink
from secret_message.models.user import User
from secret_message.schemas.account_schemas import MagicLinkRequestSchema
from secret_message.services.auth import session_response
from secret_message.services.email_service import get_email_service
from secret_message.services.urls import get_base_url
from secret_message.utils.clock import utcnow

bp = Blueprint('magic_link', __name__, url_prefix='/api/auth')
logger = get_logger(__name__)


@bp.route('/request-magic-link', methods=['POST'])
def request_magic_link():
    """
    Issue a magic link for an email address.

    Always answers success so the endpoint cannot be used to probe which
    addresses have accounts.
    """
    data = MagicLinkRequestSchema().load(request.get_json(silent=True) or {})
    email = data['email']

    link = MagicLink.issue(email, Config.MAGIC_LINK_TTL_MIN)
    db.session.add(link)
    db.session.commit()

    verify_url = f"{get_base_url()}/api/auth/verify-magic-link?token={link.token}"
    sent = get_email_service().send_magic_link(email, verify_url, Config.MAGIC_LINK_TTL_MIN)
    if not sent:
        logger.warning("Magic link email not delivered", magic_link_id=link.id)

    return jsonify({
        'success': True,
        'message': 'If that address is valid, a sign-in link is on its way.'
    }), 200


@bp.route('/verify-magic-link', methods=['GET'])
def verify_magic_link():
    """Consume a token and start a session."""
    token = (request.args.get('token') or '').strip()
    if not token:
        raise ValidationFailed("Invalid or missing token")

    link = MagicLink.query.filter_by(token=token, used=False).first()
    if link is None:
        raise ValidationFailed("Invalid or already used token")
    if link.is_expired(utcnow()):
        raise ValidationFailed("Token has expired")

    # single use: only the request that flips the flag gets a session
    result = db.session.execute(
        update(MagicLink)
        .where(MagicLink.id == link.id, MagicLink.used.is_(False))
        .values(used=True)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount != 1:
        raise ValidationFailed("Invalid or already used token")

    user = User.query.filter_by(email=link.email).first()
    if user is None:
        user = User(email=link.email)
        db.session.add(user)
        db.session.commit()

    logger.info("Magic link verified", user_id=user.id)
    return session_response(user)
