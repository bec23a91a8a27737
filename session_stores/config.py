"""Flask configuration for the session layer."""

import os
import secrets

SESSION_STORE_COOKIE_NAME = os.environ.get('SESSION_STORE_COOKIE_NAME',
                                           'SESSION_ID')
"""Name of the session cookie, which is also the name of the session."""

SESSION_STORE_BACKEND = os.environ.get('SESSION_STORE_BACKEND', 'redis')
"""Either ``redis`` or ``mongo``."""

SESSION_STORE_HASH_KEY = os.environ.get('SESSION_STORE_HASH_KEY',
                                        secrets.token_urlsafe(32))
"""Key used to sign session cookies and session data."""

SESSION_STORE_BLOCK_KEY = os.environ.get('SESSION_STORE_BLOCK_KEY', '')
"""Key used to encrypt session data. If empty, data is only signed."""

SESSION_STORE_PREVIOUS_HASH_KEY = \
    os.environ.get('SESSION_STORE_PREVIOUS_HASH_KEY', '')
SESSION_STORE_PREVIOUS_BLOCK_KEY = \
    os.environ.get('SESSION_STORE_PREVIOUS_BLOCK_KEY', '')
"""
Keys that were in use before the current ones.

Values signed with these keys are still accepted while keys are rotated;
new values are always signed with the current keys.
"""

SESSION_STORE_AUTO_SAVE = os.environ.get('SESSION_STORE_AUTO_SAVE', '1')
"""If ``1``, every ``set`` on a session is written through to the store."""

SESSION_STORE_COOKIE_PATH = os.environ.get('SESSION_STORE_COOKIE_PATH', '/')
SESSION_STORE_COOKIE_DOMAIN = os.environ.get('SESSION_STORE_COOKIE_DOMAIN',
                                             '')
SESSION_STORE_COOKIE_SECURE = os.environ.get('SESSION_STORE_COOKIE_SECURE',
                                             '0')
SESSION_STORE_COOKIE_HTTPONLY = \
    os.environ.get('SESSION_STORE_COOKIE_HTTPONLY', '1')

#################### Redis ####################
REDIS_ADDRESSES = os.environ.get('REDIS_ADDRESSES', 'localhost:6379')
"""Comma-separated ``host:port`` addresses; at least six for a cluster."""

REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')
REDIS_POOL_SIZE = os.environ.get('REDIS_POOL_SIZE', '10')
REDIS_PASSWORD = os.environ.get('REDIS_PASSWORD', None)
REDIS_KEY_PREFIX = os.environ.get('REDIS_KEY_PREFIX', 'session_')
REDIS_MAX_LENGTH = os.environ.get('REDIS_MAX_LENGTH', '4096')
"""Maximum length of an encoded session; ``0`` for no limit."""

REDIS_DEFAULT_MAX_AGE = os.environ.get('REDIS_DEFAULT_MAX_AGE', '1800')
"""TTL of sessions whose cookie has no ``Max-Age``, in seconds."""

#################### MongoDB ####################
MONGO_URI = os.environ.get('MONGO_URI', 'mongodb://localhost:27017')
MONGO_DATABASE = os.environ.get('MONGO_DATABASE', 'sessions')
MONGO_COLLECTION = os.environ.get('MONGO_COLLECTION', 'sessions')
MONGO_MAX_AGE = os.environ.get('MONGO_MAX_AGE', str(86400 * 30))
MONGO_ENSURE_TTL = os.environ.get('MONGO_ENSURE_TTL', '1')

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO')
