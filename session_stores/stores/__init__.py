"""
Session store backends, and their construction from application config.

One store is built per application and shared by every request; see
:func:`current_store`.
"""

from typing import Any, List, Optional

from flask import Flask, current_app
from pymongo import MongoClient

from ..exceptions import ConfigurationError
from ..sessions import Store
from .mongo_store import MongoStore
from .mongo_store import DIAL_TIMEOUT as MONGO_DIAL_TIMEOUT
from .redis_store import RedisStore

EXTENSION_KEY = 'session_stores.store'


def is_enabled(value: Any) -> bool:
    """Interpret a config flag such as ``'1'`` or ``'true'``."""
    return str(value).lower() in ('1', 'true', 'yes', 'on')


def init_app(app: Flask) -> None:
    """Set default configuration parameters for an application instance."""
    config = app.config
    config.setdefault('SESSION_STORE_COOKIE_NAME', 'SESSION_ID')
    config.setdefault('SESSION_STORE_BACKEND', 'redis')
    config.setdefault('SESSION_STORE_BLOCK_KEY', '')
    config.setdefault('SESSION_STORE_PREVIOUS_HASH_KEY', '')
    config.setdefault('SESSION_STORE_PREVIOUS_BLOCK_KEY', '')
    config.setdefault('SESSION_STORE_AUTO_SAVE', '1')
    config.setdefault('SESSION_STORE_COOKIE_PATH', '/')
    config.setdefault('SESSION_STORE_COOKIE_DOMAIN', '')
    config.setdefault('SESSION_STORE_COOKIE_SECURE', '0')
    config.setdefault('SESSION_STORE_COOKIE_HTTPONLY', '1')
    config.setdefault('REDIS_ADDRESSES', 'localhost:6379')
    config.setdefault('REDIS_CLUSTER', '0')
    config.setdefault('REDIS_POOL_SIZE', '10')
    config.setdefault('REDIS_PASSWORD', None)
    config.setdefault('REDIS_KEY_PREFIX', 'session_')
    config.setdefault('REDIS_MAX_LENGTH', '4096')
    config.setdefault('REDIS_DEFAULT_MAX_AGE', '1800')
    config.setdefault('MONGO_URI', 'mongodb://localhost:27017')
    config.setdefault('MONGO_DATABASE', 'sessions')
    config.setdefault('MONGO_COLLECTION', 'sessions')
    config.setdefault('MONGO_MAX_AGE', str(86400 * 30))
    config.setdefault('MONGO_ENSURE_TTL', '1')


def key_pairs(config: dict) -> List[Optional[str]]:
    """Get the current and previous key pairs, current first."""
    try:
        pairs = [config['SESSION_STORE_HASH_KEY'],
                 config.get('SESSION_STORE_BLOCK_KEY') or None]
    except KeyError as e:
        raise ConfigurationError('SESSION_STORE_HASH_KEY is not set') from e
    if config.get('SESSION_STORE_PREVIOUS_HASH_KEY'):
        pairs += [config['SESSION_STORE_PREVIOUS_HASH_KEY'],
                  config.get('SESSION_STORE_PREVIOUS_BLOCK_KEY') or None]
    return pairs


def get_redis_store(config: dict) -> RedisStore:
    """Build a :class:`.RedisStore` from config."""
    addresses = [address.strip() for address
                 in config.get('REDIS_ADDRESSES', '').split(',')
                 if address.strip()]
    store = RedisStore(is_enabled(config.get('REDIS_CLUSTER', '0')),
                       int(config.get('REDIS_POOL_SIZE', '10')),
                       addresses,
                       config.get('REDIS_PASSWORD') or None,
                       *key_pairs(config))
    store.set_key_prefix(config.get('REDIS_KEY_PREFIX', 'session_'))
    store.set_max_length(int(config.get('REDIS_MAX_LENGTH', '4096')))
    store.default_max_age = int(config.get('REDIS_DEFAULT_MAX_AGE', '1800'))
    return store


def get_mongo_store(config: dict) -> MongoStore:
    """Build a :class:`.MongoStore` from config."""
    client: MongoClient = MongoClient(
        config.get('MONGO_URI', 'mongodb://localhost:27017'),
        connectTimeoutMS=MONGO_DIAL_TIMEOUT * 1000
    )
    return MongoStore(client,
                      int(config.get('MONGO_MAX_AGE', str(86400 * 30))),
                      is_enabled(config.get('MONGO_ENSURE_TTL', '1')),
                      *key_pairs(config),
                      database=config.get('MONGO_DATABASE', 'sessions'),
                      collection=config.get('MONGO_COLLECTION', 'sessions'))


def get_store(app: Optional[Flask] = None) -> Store:
    """Build the store selected by ``SESSION_STORE_BACKEND``."""
    config = (app if app is not None else current_app).config
    backend = config.get('SESSION_STORE_BACKEND', 'redis')
    store: Store
    if backend == 'redis':
        store = get_redis_store(config)
    elif backend == 'mongo':
        store = get_mongo_store(config)
    else:
        raise ConfigurationError(f'Unknown session backend: {backend}')

    secure = config.get('SESSION_STORE_COOKIE_SECURE', '0')
    http_only = config.get('SESSION_STORE_COOKIE_HTTPONLY', '1')
    store.set_options(store.options._replace(
        path=config.get('SESSION_STORE_COOKIE_PATH', '/'),
        domain=config.get('SESSION_STORE_COOKIE_DOMAIN') or None,
        secure=is_enabled(secure),
        http_only=is_enabled(http_only)
    ))
    return store


def current_store(app: Optional[Flask] = None) -> Store:
    """Get/create the :class:`.Store` for this application."""
    if app is None:
        app = current_app
    if EXTENSION_KEY not in app.extensions:
        app.extensions[EXTENSION_KEY] = get_store(app)
    store: Store = app.extensions[EXTENSION_KEY]
    return store
