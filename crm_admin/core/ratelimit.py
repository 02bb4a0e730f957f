"""
Request rate limiting.

The limiter is attached to ``app.state`` in main.py; routes opt in with
``@limiter.limit(...)`` and must accept a ``request: Request`` argument.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from crm_admin.core import config


limiter = Limiter(key_func=get_remote_address, enabled=config.RATE_LIMIT_ENABLED)
