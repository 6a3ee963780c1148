"""
Access to the CLASS_SCHEDULE settings block with defaults.
"""

from django.conf import settings

DEFAULTS = {
    'TIME_ZONE': 'UTC',
    'LEAD_TIME_MINUTES': 30,
    'MIN_SESSION_MINUTES': 30,
    'LOCK_CACHE_ALIAS': 'default',
    'LOCK_TIMEOUT_SECONDS': 5,
    'LOCK_TTL_SECONDS': 30,
    'LOCK_POLL_SECONDS': 0.05,
    'LOCK_RETRIES': 2,
}


def schedule_setting(name):
    """Look up one scheduling setting, falling back to the default"""
    overrides = getattr(settings, 'CLASS_SCHEDULE', {})
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
