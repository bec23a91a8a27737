"""In-memory stand-ins for Redis and MongoDB clients."""

from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional
from unittest import mock

from .. import redis_store

HASH_KEY = b'h' * 32
BLOCK_KEY = b'b' * 32
KEY_PAIRS = (HASH_KEY, BLOCK_KEY)


class FakeRedis(object):
    """Keeps values in a dict, and records the TTL of each key."""

    def __init__(self) -> None:
        self.data: Dict[str, bytes] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.alive = True
        self.closed = False

    def ping(self) -> bool:
        return self.alive

    def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        if isinstance(value, str):
            value = value.encode('utf-8')
        self.data[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    def close(self) -> None:
        self.closed = True


def make_redis_store(fake: FakeRedis, *key_pairs: Any) \
        -> redis_store.RedisStore:
    """Create a single-node :class:`.RedisStore` that talks to ``fake``."""
    with mock.patch(f'{redis_store.__name__}.redis') as mock_redis:
        mock_redis.StrictRedis.return_value = fake
        return redis_store.RedisStore(False, 10, ['localhost:6379'], None,
                                      *(key_pairs or KEY_PAIRS))


class FakeCollection(object):
    """Keeps documents in a dict keyed by ``_id``."""

    def __init__(self) -> None:
        self.documents: Dict[Any, dict] = {}
        self.indexes: list = []

    def create_index(self, key: str, **kwargs: Any) -> str:
        self.indexes.append((key, kwargs))
        return f'{key}_1'

    def find_one(self, query: dict, session: Any = None) -> Optional[dict]:
        document = self.documents.get(query['_id'])
        return dict(document) if document is not None else None

    def replace_one(self, query: dict, replacement: dict, upsert: bool = False,
                    session: Any = None) -> None:
        if query['_id'] in self.documents or upsert:
            self.documents[query['_id']] = dict(replacement)

    def delete_one(self, query: dict, session: Any = None) -> None:
        self.documents.pop(query['_id'], None)


class FakeMongoClient(object):
    """Hands out collections, and counts client sessions."""

    def __init__(self) -> None:
        self.databases: Dict[str, Dict[str, FakeCollection]] = \
            defaultdict(lambda: defaultdict(FakeCollection))
        self.sessions_started = 0
        self.sessions_ended = 0
        self.closed = False

    @contextmanager
    def start_session(self, **kwargs: Any) -> Generator[Any, None, None]:
        self.sessions_started += 1
        try:
            yield mock.sentinel.client_session
        finally:
            self.sessions_ended += 1

    def __getitem__(self, name: str) -> Dict[str, FakeCollection]:
        return self.databases[name]

    def close(self) -> None:
        self.closed = True


def request(cookies: Optional[dict] = None) -> mock.MagicMock:
    """A request that carries ``cookies``."""
    return mock.MagicMock(cookies=cookies or {}, environ={})
