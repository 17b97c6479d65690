import os
from urllib.parse import urlsplit

from flask import has_request_context, request


def get_base_url() -> str:
    """
    Public origin used in unlock links, checkout redirects and emails.

    BASE_URL / APP_URL win; otherwise the current request's host; otherwise
    localhost on PORT.
    """
    explicit = os.getenv("BASE_URL") or os.getenv("APP_URL")
    if explicit:
        parts = urlsplit(explicit)
        if parts.scheme and parts.netloc:
            return f"{parts.scheme}://{parts.netloc}"
        return explicit.rstrip("/")

    if has_request_context():
        return request.host_url.rstrip("/")

    return f"http://localhost:{os.getenv('PORT', '5000')}"


def unlock_url(slug: str) -> str:
    return f"{get_base_url()}/m/{slug}"
