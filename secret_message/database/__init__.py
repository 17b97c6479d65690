from secret_message.database.db import db

__all__ = ["db"]
