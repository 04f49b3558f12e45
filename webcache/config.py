"""Configuration defaults. Environment variables override where noted."""
import os

import appdirs

from webcache.errors import UsageError

APP_NAME = 'webcache'

# Seconds to wait for an origin to connect or send data
DEFAULT_TIMEOUT = 30.0

USER_AGENT = 'webcache/0.1'


def default_cache_dir() -> str:
    """$WEBCACHE_DIR, or the per-user cache directory for the platform."""
    return os.environ.get('WEBCACHE_DIR') or appdirs.user_cache_dir(APP_NAME)


def default_timeout() -> float:
    """$WEBCACHE_TIMEOUT in seconds, or DEFAULT_TIMEOUT."""
    value = os.environ.get('WEBCACHE_TIMEOUT')
    if not value:
        return DEFAULT_TIMEOUT
    try:
        return float(value)
    except ValueError as e:
        raise UsageError(f'WEBCACHE_TIMEOUT must be a number of seconds, not {value!r}') from e
