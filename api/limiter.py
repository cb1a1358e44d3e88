"""
api/limiter.py -- The one slowapi Limiter for the process.

api/main.py mounts it (SlowAPIMiddleware + app.state.limiter); route modules
decorate with @limiter.limit(). Counters live in this instance's memory
store, so every module must import this object rather than build its own.
Per-process counters are enough for a single uvicorn worker; several workers
each count separately.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for POST /user/login, read from Settings when the route is hit."""
    return get_settings().login_rate_limit
