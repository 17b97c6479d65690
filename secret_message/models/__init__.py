# -*- coding: utf-8 -*-
from secret_message.infra.db import db

from .user import User
from .message import Message
from .payment import Payment
from .payout import PayoutHistory
from .magic_link import MagicLink
