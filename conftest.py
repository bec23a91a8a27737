import pytest

from session_stores import factory
from session_stores.middleware import current_session
from session_stores.stores.tests.util import FakeRedis, make_redis_store


@pytest.fixture()
def redis():
    return FakeRedis()


@pytest.fixture()
def app(redis):
    app = factory.create_web_app(store=make_redis_store(redis))
    app.config['TESTING'] = True

    @app.route('/count')
    def count():
        session = current_session()
        count = session.get('count', 0)
        session.set('count', count + 1)
        return str(count)

    @app.route('/logout')
    def logout():
        session = current_session()
        session.set_options(session.get_session().options._replace(max_age=-1))
        session.clear()
        session.save()
        return 'bye'

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def request_context(app):
    yield app.test_request_context()
