"""Tests for :mod:`session_stores.stores.mongo_store`."""

from datetime import datetime
from unittest import TestCase, mock

from bson import ObjectId
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from pytz import UTC

from .. import mongo_store
from ...codecs import codecs_from_pairs, encode_multi
from ...exceptions import InvalidModifiedValue, InvalidSessionID, \
    SessionDeletionFailed, SessionSaveFailed, SessionUnknown, StoreUnavailable
from ...middleware import CookieWriter
from . import util


class TestConstruction(TestCase):
    """Tests for creating a :class:`.MongoStore`."""

    def test_ensure_ttl(self):
        """A TTL index on ``modified`` is created on request."""
        client = util.FakeMongoClient()
        mongo_store.MongoStore(client, 3600, True, *util.KEY_PAIRS)
        collection = client['sessions']['sessions']
        self.assertEqual(len(collection.indexes), 1)
        key, kwargs = collection.indexes[0]
        self.assertEqual(key, 'modified')
        self.assertEqual(kwargs['expireAfterSeconds'], 3600)
        self.assertTrue(kwargs['sparse'])
        self.assertTrue(kwargs['background'])
        self.assertEqual(client.sessions_started, client.sessions_ended)

    def test_ttl_index_failure(self):
        """A database error while creating the TTL index is wrapped."""
        client = util.FakeMongoClient()
        client['sessions']['sessions'].create_index = mock.MagicMock(
            side_effect=ServerSelectionTimeoutError('down')
        )
        with self.assertRaises(StoreUnavailable):
            mongo_store.MongoStore(client, 3600, True, *util.KEY_PAIRS)
        self.assertEqual(client.sessions_started, client.sessions_ended)

    def test_no_ttl(self):
        """No index is created otherwise."""
        client = util.FakeMongoClient()
        store = mongo_store.MongoStore(client, 3600, False, *util.KEY_PAIRS)
        self.assertEqual(client['sessions']['sessions'].indexes, [])
        self.assertEqual(client.sessions_started, 0)
        self.assertEqual(store.options.max_age, 3600)
        self.assertEqual(store.options.path, '/')

    def test_database_and_collection(self):
        """The database and collection can be chosen."""
        client = util.FakeMongoClient()
        mongo_store.MongoStore(client, 3600, True, *util.KEY_PAIRS,
                               database='app', collection='web_sessions')
        self.assertEqual(len(client['app']['web_sessions'].indexes), 1)


class TestMongoStore(TestCase):
    """Sessions are kept as documents in MongoDB."""

    def setUp(self):
        """Create a store on a fake client."""
        self.client = util.FakeMongoClient()
        self.store = mongo_store.MongoStore(self.client, 3600, False,
                                            *util.KEY_PAIRS)
        self.collection = self.client['sessions']['sessions']

    def _save(self, values: dict):
        session = self.store.new(util.request(), 'sess')
        session.values.update(values)
        writer = CookieWriter()
        self.store.save(util.request(), writer, session)
        return session, writer.cookies['sess']

    def test_save(self):
        """Saving upserts one document keyed by the session ID."""
        session, (cookie, kwargs) = self._save({'count': 0})
        self.assertTrue(ObjectId.is_valid(session.id))
        document = self.collection.documents[ObjectId(session.id)]
        self.assertEqual(set(document), {'_id', 'data', 'modified'})
        self.assertIsInstance(document['modified'], datetime)
        self.assertNotIn('count', document['data'])
        self.assertTrue(bool(cookie))
        self.assertEqual(kwargs['max_age'], 3600)
        self.assertEqual(self.client.sessions_started,
                         self.client.sessions_ended)

    def test_round_trip(self):
        """Values saved in one request are loaded in the next."""
        values = {'count': 1, 'user': 'foouser', 'tags': ['a', 'b'],
                  'prefs': {'theme': 'dark'}}
        saved, (cookie, _) = self._save(values)
        loaded = self.store.new(util.request({'sess': cookie}), 'sess')
        self.assertFalse(loaded.is_new)
        self.assertEqual(loaded.id, saved.id)
        self.assertEqual(loaded.values, values)

        loaded.values['count'] = 2
        self.store.save(util.request(), CookieWriter(), loaded)
        self.assertEqual(len(self.collection.documents), 1)

    def test_modified_from_values(self):
        """A ``modified`` timestamp in the values is stored as such."""
        modified = datetime(2020, 1, 2, 3, 4, 5, tzinfo=UTC)
        session, _ = self._save({'modified': modified})
        document = self.collection.documents[ObjectId(session.id)]
        self.assertEqual(document['modified'], modified)

    def test_round_trip_datetime(self):
        """Datetimes in the values keep their microseconds."""
        when = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=UTC)
        _, (cookie, _) = self._save({'when': when})
        loaded = self.store.new(util.request({'sess': cookie}), 'sess')
        self.assertEqual(loaded.values, {'when': when})

    def test_modified_wrong_type(self):
        """A ``modified`` value that is not a timestamp is refused."""
        session = self.store.new(util.request(), 'sess')
        session.values['modified'] = 'yesterday'
        with self.assertRaises(InvalidModifiedValue):
            self.store.save(util.request(), CookieWriter(), session)
        self.assertEqual(self.collection.documents, {})

    def test_invalid_id(self):
        """An ID that is not an ObjectId is refused."""
        session = self.store.new(util.request(), 'sess')
        session.id = 'notanobjectid'
        with self.assertRaises(InvalidSessionID):
            self.store.save(util.request(), CookieWriter(), session)
        with self.assertRaises(InvalidSessionID):
            self.store._load(session)

    def test_invalid_id_in_cookie(self):
        """A cookie that carries an invalid ID yields a new session."""
        codecs = codecs_from_pairs(*util.KEY_PAIRS)
        cookie = encode_multi('sess', 'notanobjectid', codecs)
        session = self.store.new(util.request({'sess': cookie}), 'sess')
        self.assertTrue(session.is_new)
        self.assertEqual(session.id, '')

    def test_unknown(self):
        """A valid ID without a document is not found."""
        session = self.store.new(util.request(), 'sess')
        session.id = str(ObjectId())
        with self.assertRaises(SessionUnknown):
            self.store._load(session)

    def test_missing_document(self):
        """A valid cookie whose document is gone yields a new session."""
        _, (cookie, _) = self._save({'count': 0})
        self.collection.documents.clear()
        session = self.store.new(util.request({'sess': cookie}), 'sess')
        self.assertTrue(session.is_new)
        self.assertEqual(session.values, {})

    def test_tampered_cookie(self):
        """An altered cookie yields a new, empty session."""
        _, (cookie, _) = self._save({'count': 0})
        position = len(cookie) // 2
        replacement = 'A' if cookie[position] != 'A' else 'B'
        tampered = cookie[:position] + replacement + cookie[position + 1:]
        session = self.store.new(util.request({'sess': tampered}), 'sess')
        self.assertTrue(session.is_new)
        self.assertEqual(session.values, {})

    def test_delete(self):
        """A negative max age removes the document and expires the cookie."""
        session, (cookie, _) = self._save({'count': 0})
        session.options = session.options._replace(max_age=-1)
        writer = CookieWriter()
        self.store.save(util.request(), writer, session)
        self.assertEqual(self.collection.documents, {})
        self.assertEqual(writer.cookies['sess'][0], '')

        session = self.store.new(util.request({'sess': cookie}), 'sess')
        self.assertTrue(session.is_new)

    def test_delete_unsaved(self):
        """Expiring a session that was never saved only clears the cookie."""
        session = self.store.new(util.request(), 'sess')
        session.options = session.options._replace(max_age=-1)
        writer = CookieWriter()
        self.store.save(util.request(), writer, session)
        self.assertEqual(writer.cookies['sess'][0], '')
        self.assertEqual(self.client.sessions_started, 0)

    def test_load_failure_is_swallowed(self):
        """A database error while loading yields a new session."""
        _, (cookie, _) = self._save({'count': 0})
        self.collection.find_one = mock.MagicMock(
            side_effect=ConnectionFailure('down')
        )
        session = self.store.new(util.request({'sess': cookie}), 'sess')
        self.assertTrue(session.is_new)
        self.assertEqual(self.client.sessions_started,
                         self.client.sessions_ended)

    def test_save_failure(self):
        """A database error while saving is raised."""
        self.collection.replace_one = mock.MagicMock(
            side_effect=ConnectionFailure('down')
        )
        with self.assertRaises(SessionSaveFailed):
            self._save({'count': 0})
        self.assertEqual(self.client.sessions_started,
                         self.client.sessions_ended)

    def test_delete_failure(self):
        """A database error while deleting is raised."""
        session, _ = self._save({'count': 0})
        self.collection.delete_one = mock.MagicMock(
            side_effect=ConnectionFailure('down')
        )
        session.options = session.options._replace(max_age=-1)
        with self.assertRaises(SessionDeletionFailed):
            self.store.save(util.request(), CookieWriter(), session)

    def test_close(self):
        """Closing the store closes the client."""
        self.store.close()
        self.assertTrue(self.client.closed)
