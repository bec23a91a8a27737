"""
Session store backed by Redis.

Session values are encoded with the store's codecs and kept at
``<key_prefix><session id>`` with a TTL. The cookie carries only the signed
session ID. Both a single Redis node and a Redis cluster are supported; the
client is thread safe and pools its own connections, so one store can be
shared by every request in the process.
"""

import base64
import logging
from typing import Any, List, Optional, Tuple

import redis
from redis.exceptions import ConnectionError as RedisConnectionError, \
    RedisClusterException, RedisError

from ..codecs import Key, codecs_from_pairs, decode_multi, encode_multi, \
    generate_random_key
from ..domain import Options, Session
from ..exceptions import CodecError, ConfigurationError, \
    SessionDeletionFailed, SessionLoadFailed, SessionSaveFailed, \
    SessionTooLarge, StoreUnavailable
from ..sessions import Store, cookie_kwargs

logger = logging.getLogger(__name__)

SESSION_EXPIRE = 86400 * 30
"""Default lifetime of session cookies, in seconds."""

DEFAULT_MAX_AGE = 60 * 30
"""Redis TTL for sessions whose cookie has no ``Max-Age``."""

DEFAULT_KEY_PREFIX = 'session_'
DEFAULT_MAX_LENGTH = 4096
DIAL_TIMEOUT = 10
CLUSTER_MIN_NODES = 6
DEFAULT_PORT = 6379


def parse_address(address: str) -> Tuple[str, int]:
    """Split a ``host:port`` address."""
    host, _, port = address.rpartition(':')
    if not host:
        return port, DEFAULT_PORT
    try:
        return host, int(port)
    except ValueError as e:
        raise ConfigurationError(f'Invalid Redis address: {address}') from e


def generate_session_id() -> str:
    """Generate an alphanumeric session ID from 32 random bytes."""
    return base64.b32encode(generate_random_key(32)).decode('ascii') \
        .rstrip('=')


class RedisStore(Store):
    """Stores sessions in Redis."""

    def __init__(self, cluster: bool, size: int, addresses: List[str],
                 password: Optional[str] = None,
                 *key_pairs: Optional[Key]) -> None:
        """
        Connect to Redis and check that it is alive.

        Parameters
        ----------
        cluster : bool
            Connect to a Redis cluster rather than a single node.
        size : int
            Maximum number of connections in the pool.
        addresses : list
            ``host:port`` addresses. A cluster needs at least six seed nodes;
            a single node needs exactly one address.
        password : str
        key_pairs : bytes
            Hash and block keys for the codecs; see
            :func:`.codecs.codecs_from_pairs`.

        Raises
        ------
        :class:`ConfigurationError`
            Raised, before connecting, if the addresses do not fit the mode.
        :class:`StoreUnavailable`
            Raised if Redis does not answer a ping.

        """
        if cluster and len(addresses) < CLUSTER_MIN_NODES:
            raise ConfigurationError(
                f'Cluster mode needs at least {CLUSTER_MIN_NODES} addresses,'
                f' got {len(addresses)}'
            )
        if not cluster and len(addresses) != 1:
            raise ConfigurationError(
                f'Single mode needs exactly one address, got {len(addresses)}'
            )
        self.codecs = codecs_from_pairs(*key_pairs)
        self.options = Options(path='/', max_age=SESSION_EXPIRE)
        self.default_max_age = DEFAULT_MAX_AGE
        self.max_length = DEFAULT_MAX_LENGTH
        self.key_prefix = DEFAULT_KEY_PREFIX
        self.is_cluster = cluster

        logger.debug('New Redis connection at %s (cluster: %s)',
                     ', '.join(addresses), cluster)
        self.r = self._connect(addresses, size, password)
        self.ping()

    def _connect(self, addresses: List[str], size: int,
                 password: Optional[str]) -> Any:
        try:
            if self.is_cluster:
                nodes = [redis.cluster.ClusterNode(*parse_address(address))
                         for address in addresses]
                return redis.cluster.RedisCluster(
                    startup_nodes=nodes,
                    max_connections=size,
                    password=password,
                    socket_connect_timeout=DIAL_TIMEOUT
                )
            host, port = parse_address(addresses[0])
            return redis.StrictRedis(
                host=host,
                port=port,
                password=password,
                max_connections=size,
                socket_connect_timeout=DIAL_TIMEOUT
            )
        except (RedisError, RedisClusterException) as e:
            raise StoreUnavailable(f'Could not connect to Redis: {e}') from e

    def ping(self) -> None:
        """Check that Redis is alive."""
        try:
            alive = self.r.ping()
        except (RedisError, RedisClusterException) as e:
            raise StoreUnavailable(f'Ping failed: {e}') from e
        if not alive:
            raise StoreUnavailable('Redis did not answer PONG')

    def close(self) -> None:
        """Close the connection pool."""
        self.r.close()

    def set_max_length(self, length: int) -> None:
        """
        Restrict the length of encoded sessions to ``length`` bytes.

        ``0`` removes the limit, which should be used with caution. Negative
        values are ignored.
        """
        if length >= 0:
            self.max_length = length

    def set_key_prefix(self, prefix: str) -> None:
        """Set the prefix of session keys."""
        self.key_prefix = prefix

    def new(self, request: Any, name: str) -> Session:
        """
        Create a session for ``name`` from the request cookie, if any.

        A cookie that does not decode, or whose session is gone from Redis,
        yields an empty new session. Connection failures are raised.
        """
        session = self.blank(name)
        cookie = request.cookies.get(name)
        if cookie is None:
            return session
        try:
            session.id = decode_multi(name, cookie, self.codecs)
        except CodecError as e:
            logger.debug('Discarding cookie for session %s: %s', name, e)
            return session
        try:
            found = self._load(session)
        except CodecError as e:
            logger.debug('Discarding data for session %s: %s', name, e)
            found = False
        if not found:
            session.id = ''
        session.is_new = not found
        return session

    def save(self, request: Any, response: Any, session: Session) -> None:
        """Persist ``session`` and set its cookie on ``response``."""
        if session.options.max_age < 0:
            self._delete(session)
            response.set_cookie(session.name, '',
                                **cookie_kwargs(session.options))
            return

        if not session.id:
            session.id = generate_session_id()
        self._save(session)
        encoded = encode_multi(session.name, session.id, self.codecs)
        response.set_cookie(session.name, encoded,
                            **cookie_kwargs(session.options))

    def _key(self, session: Session) -> str:
        return self.key_prefix + session.id

    def _save(self, session: Session) -> None:
        encoded = encode_multi(session.name, session.values, self.codecs)
        if self.max_length != 0 and len(encoded) > self.max_length:
            raise SessionTooLarge('The value to store is too big')

        age = session.options.max_age
        if age == 0:
            age = self.default_max_age
        try:
            self.r.set(self._key(session), encoded, ex=age)
        except RedisConnectionError as e:
            raise SessionSaveFailed(f'Connection failed: {e}') from e
        except RedisError as e:
            raise SessionSaveFailed(f'Failed to save: {e}') from e

    def _load(self, session: Session) -> bool:
        """Read session values from Redis; ``False`` if there are none."""
        try:
            data = self.r.get(self._key(session))
        except RedisConnectionError as e:
            raise SessionLoadFailed(f'Connection failed: {e}') from e
        except RedisError as e:
            raise SessionLoadFailed(f'Failed to load: {e}') from e
        if not data:
            return False
        session.values = decode_multi(session.name, data, self.codecs)
        return True

    def _delete(self, session: Session) -> None:
        if not session.id:
            return
        try:
            self.r.delete(self._key(session))
        except RedisConnectionError as e:
            raise SessionDeletionFailed(f'Connection failed: {e}') from e
        except RedisError as e:
            raise SessionDeletionFailed(f'Failed to delete: {e}') from e
