import os
from decimal import Decimal


class Config:
    # Platform fee: flat part plus a percentage of the unlock price
    PLATFORM_FEE_FLAT_CENTS = int(os.getenv("SM_PLATFORM_FEE_FLAT_CENTS", 169))
    PLATFORM_FEE_RATE = Decimal(os.getenv("SM_PLATFORM_FEE_RATE", "0.069"))

    MAGIC_LINK_TTL_MIN = int(os.getenv("SM_MAGIC_LINK_TTL_MIN", 15))
    MIN_PASSWORD_LENGTH = 8

    # Partner widget
    WIDGET_IP_LIMIT = os.getenv("SM_WIDGET_IP_LIMIT", "10 per minute")
    WIDGET_PARTNER_LIMIT = os.getenv("SM_WIDGET_PARTNER_LIMIT", "100 per minute")
    WIDGET_MAX_CONTENT = 5000
    WIDGET_DEFAULT_PRICE = Decimal("2.99")
    WIDGET_MIN_PRICE = Decimal("0.99")
    WIDGET_MAX_PRICE = Decimal("99.99")
    WIDGET_MESSAGE_TITLE = "Secret Message"

    # Attempts at the guarded view-count update before giving up
    VIEW_UPDATE_ATTEMPTS = 5
    # Lifetime of the file/preview grant handed out with each view
    VIEW_GRANT_SECONDS = int(os.getenv("SM_VIEW_GRANT_SECONDS", 300))

    STRIPE_CURRENCY = os.getenv("SM_STRIPE_CURRENCY", "usd")
