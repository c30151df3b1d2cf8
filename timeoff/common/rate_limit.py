"""Rate limiting (slowapi).

``limiter`` is registered on the app in main.py. Leave submissions carry a
tighter per-client limit than the default since each one takes row locks on
the employee and balance.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from timeoff.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)

submit_limit = limiter.limit(settings.RATE_LIMIT_SUBMIT)
