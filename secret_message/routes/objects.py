# -*- coding: utf-8 -*-
"""
Object storage routes: authenticated upload, ACL-gated download.
"""
from flask import Blueprint, jsonify, request, send_file

from secret_message.errors import NotFound, ValidationFailed
from secret_message.infra.log import get_logger
from secret_message.services.auth import current_user, login_required
from secret_message.services.object_storage import (
    OBJECT_PREFIX,
    ObjectNotFoundError,
    VISIBILITY_PRIVATE,
    get_object_storage,
)

objects_bp = Blueprint('objects', __name__)
logger = get_logger(__name__)


@objects_bp.route('/api/objects/upload', methods=['POST'])
@login_required
def upload_object():
    """Store a multipart ``file`` owned privately by the caller."""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        raise ValidationFailed("A file is required")

    storage = get_object_storage()
    object_path = storage.save_upload(upload.stream, upload.filename)
    storage.set_acl(object_path, owner=current_user().id, visibility=VISIBILITY_PRIVATE)

    return jsonify({
        'object_path': object_path,
        'file_type': upload.mimetype or None,
    }), 201


@objects_bp.route('/objects/<path:object_path>', methods=['GET'])
def download_object(object_path):
    storage = get_object_storage()
    try:
        obj = storage.get(f"{OBJECT_PREFIX}{object_path}")
    except ObjectNotFoundError:
        raise NotFound("Object not found")

    user = current_user()
    # 404 rather than 403 so probing does not reveal which objects exist
    if not storage.can_read(obj, user.id if user else None):
        raise NotFound("Object not found")

    policy = storage.get_acl(obj) or {}
    resp = send_file(obj.full_path, mimetype=obj.content_type, max_age=3600)
    resp.headers['Cache-Control'] = f"{'public' if policy.get('visibility') == 'public' else 'private'}, max-age=3600"
    return resp
