"""
Governance settings, read from the Flask app config with fallbacks.
"""
from flask import current_app, has_app_context

DEFAULTS = {
    # Maker-checker: a requester may not decide their own request.
    'GOVERNANCE_ALLOW_SELF_DECISION': False,
    # Pending requests older than this are reported, never expired.
    'GOVERNANCE_STALE_REQUEST_HOURS': 72,
    'GOVERNANCE_MIN_REASON_LENGTH': 1,
}


def setting(key):
    default = DEFAULTS[key]
    if not has_app_context():
        return default
    return current_app.config.get(key, default)
