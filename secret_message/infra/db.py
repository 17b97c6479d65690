"""
Unified database infrastructure module.

All models import the SQLAlchemy instance from here.
"""

from secret_message.database import db

__all__ = ["db"]
