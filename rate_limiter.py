"""
Rate limiting configuration for the Visitor Desk governance service
"""
from flask import session
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os

DEFAULT_LIMITS = [
    limit.strip()
    for limit in os.environ.get('RATE_LIMIT_DEFAULTS', '1000 per hour;100 per minute').split(';')
    if limit.strip()
]

# Per-route limit for endpoints that write governed records or decisions.
GOVERNANCE_WRITE_LIMIT = os.environ.get('GOVERNANCE_WRITE_LIMIT', '30 per minute')


def get_limiter_storage_uri():
    """
    Get storage URI for rate limiter
    Uses Redis in production, memory in development
    """
    redis_url = os.environ.get('REDIS_URL')
    if redis_url:
        return redis_url
    return "memory://"


def actor_or_remote_address():
    """Limit signed-in staff per account; the front desk often shares one IP."""
    user_id = session.get('user_id')
    if user_id:
        return f'user:{user_id}'
    return get_remote_address()


limiter = Limiter(
    key_func=actor_or_remote_address,
    storage_uri=get_limiter_storage_uri(),
    default_limits=DEFAULT_LIMITS,
    strategy="fixed-window",
)


def init_limiter(app):
    """Initialize rate limiter with Flask app"""
    limiter.init_app(app)
    return limiter
