"""
Session store backed by MongoDB.

Each session is one document, ``{_id, data, modified}``, where ``_id`` is
the ObjectId form of the session ID and ``data`` holds the encoded values.
Every operation runs in its own client session, which is released when the
operation completes. With ``ensure_ttl`` the store creates a TTL index on
``modified`` so that MongoDB removes expired sessions.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Generator, Optional, Tuple

from bson import ObjectId
from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.collection import Collection
from pymongo.errors import PyMongoError
from pytz import UTC

from ..codecs import Key, codecs_from_pairs, decode_multi, encode_multi
from ..domain import Options, Session
from ..exceptions import InvalidModifiedValue, InvalidSessionID, \
    SessionDeletionFailed, SessionError, SessionLoadFailed, \
    SessionSaveFailed, SessionUnknown, StoreUnavailable
from ..sessions import Store, cookie_kwargs

logger = logging.getLogger(__name__)

SESSION_DB_NAME = 'sessions'
SESSION_COLLECTION_NAME = 'sessions'
DIAL_TIMEOUT = 10
MODIFIED_KEY = 'modified'


class MongoStore(Store):
    """Stores sessions in MongoDB."""

    def __init__(self, client: MongoClient, max_age: int, ensure_ttl: bool,
                 *key_pairs: Optional[Key],
                 database: str = SESSION_DB_NAME,
                 collection: str = SESSION_COLLECTION_NAME) -> None:
        """
        Configure the store.

        Parameters
        ----------
        client : :class:`pymongo.MongoClient`
            Shared client; it pools its own connections.
        max_age : int
            Default cookie lifetime, and expiry of the TTL index.
        ensure_ttl : bool
            Create a TTL index on ``modified`` so that MongoDB removes
            sessions ``max_age`` seconds after their last modification.
        key_pairs : bytes
            Hash and block keys for the codecs.
        database : str
        collection : str

        Raises
        ------
        :class:`StoreUnavailable`
            Raised if the TTL index cannot be created.

        """
        self.codecs = codecs_from_pairs(*key_pairs)
        self.options = Options(path='/', max_age=max_age)
        self.client = client
        self.database = database
        self.collection = collection

        if ensure_ttl:
            try:
                with self._collection() as (c, mongo_session):
                    c.create_index(MODIFIED_KEY, background=True,
                                   sparse=True, expireAfterSeconds=max_age,
                                   session=mongo_session)
            except PyMongoError as e:
                raise StoreUnavailable(f'Failed to create TTL index: {e}') \
                    from e

    @contextmanager
    def _collection(self) -> Generator[Tuple[Collection, ClientSession],
                                       None, None]:
        """Open a client session on the session collection."""
        with self.client.start_session(causal_consistency=True) \
                as mongo_session:
            yield self.client[self.database][self.collection], mongo_session

    def close(self) -> None:
        """Close the client."""
        self.client.close()

    def new(self, request: Any, name: str) -> Session:
        """
        Create a session for ``name`` from the request cookie, if any.

        Any failure to decode the cookie or to load the session yields an
        empty new session.
        """
        session = self.blank(name)
        cookie = request.cookies.get(name)
        if cookie is None:
            return session
        try:
            session.id = decode_multi(name, cookie, self.codecs)
            self._load(session)
        except SessionError as e:
            logger.debug('No stored session for %s: %s', name, e)
            session.id = ''
            session.values = {}
            return session
        session.is_new = False
        return session

    def save(self, request: Any, response: Any, session: Session) -> None:
        """Persist ``session`` and set its cookie on ``response``."""
        if session.options.max_age < 0:
            self._delete(session)
            response.set_cookie(session.name, '',
                                **cookie_kwargs(session.options))
            return

        if not session.id:
            session.id = str(ObjectId())
        self._upsert(session)
        encoded = encode_multi(session.name, session.id, self.codecs)
        response.set_cookie(session.name, encoded,
                            **cookie_kwargs(session.options))

    def _object_id(self, session: Session) -> ObjectId:
        valid = isinstance(session.id, str) and ObjectId.is_valid(session.id)
        if not valid:
            raise InvalidSessionID(f'Invalid session id: {session.id!r}')
        return ObjectId(session.id)

    def _load(self, session: Session) -> None:
        oid = self._object_id(session)
        try:
            with self._collection() as (c, mongo_session):
                item = c.find_one({'_id': oid}, session=mongo_session)
        except PyMongoError as e:
            raise SessionLoadFailed(f'Failed to load: {e}') from e
        if item is None:
            raise SessionUnknown(f'Failed to find session {session.id}')
        session.values = decode_multi(session.name, item['data'],
                                      self.codecs)

    def _upsert(self, session: Session) -> None:
        oid = self._object_id(session)

        modified = session.values.get(MODIFIED_KEY)
        if MODIFIED_KEY not in session.values:
            modified = datetime.now(tz=UTC)
        elif not isinstance(modified, datetime):
            raise InvalidModifiedValue(
                f'Invalid modified value: {modified!r}'
            )

        encoded = encode_multi(session.name, session.values, self.codecs)
        item = {'_id': oid, 'data': encoded, MODIFIED_KEY: modified}
        try:
            with self._collection() as (c, mongo_session):
                c.replace_one({'_id': oid}, item, upsert=True,
                              session=mongo_session)
        except PyMongoError as e:
            raise SessionSaveFailed(f'Failed to save: {e}') from e

    def _delete(self, session: Session) -> None:
        if not session.id:
            return
        oid = self._object_id(session)
        try:
            with self._collection() as (c, mongo_session):
                c.delete_one({'_id': oid}, session=mongo_session)
        except PyMongoError as e:
            raise SessionDeletionFailed(f'Failed to delete: {e}') from e
