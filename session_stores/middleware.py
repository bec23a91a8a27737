"""
Attaches a server-side session to every Flask request.

Intended for use in a Flask application factory, for example:

.. code-block:: python

   from flask import Flask
   from session_stores.middleware import SessionMiddleware, current_session


   def create_web_app() -> Flask:
       app = Flask('someapp')
       app.config.from_pyfile('config.py')
       SessionMiddleware(app)
       return app


   @app.route('/count')
   def count():
       session = current_session()
       session.set('count', session.get('count', 0) + 1)
       ...

"""

import logging
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, has_request_context, request

from . import stores
from .exceptions import SessionNotAttached
from .sessions import RequestSession, Store, clear_registry

logger = logging.getLogger(__name__)

DEFAULT_KEY = 'session_stores.session'
"""Key of the :class:`.RequestSession` in the WSGI environ."""

COOKIES_KEY = 'session_stores.cookies'


class CookieWriter(object):
    """
    Holds cookies set during a request until the response exists.

    Provides the ``set_cookie`` signature of a werkzeug response. If a cookie
    is set more than once, the last value wins.
    """

    def __init__(self) -> None:
        self.cookies: Dict[str, Tuple[str, Dict[str, Any]]] = {}

    def set_cookie(self, key: str, value: str = '', **kwargs: Any) -> None:
        """Hold a cookie for the response."""
        self.cookies[key] = (value, kwargs)

    def apply(self, response: Response) -> None:
        """Set the held cookies on ``response``."""
        for key, (value, kwargs) in self.cookies.items():
            response.set_cookie(key, value, **kwargs)


class SessionMiddleware(object):
    """Attaches a :class:`.RequestSession` to each request."""

    def __init__(self, app: Optional[Flask] = None,
                 name: Optional[str] = None,
                 store: Optional[Store] = None) -> None:
        """
        Initialize ``app``, if provided.

        Parameters
        ----------
        app : :class:`Flask`
        name : str
            Name of the session and its cookie. Defaults to
            ``SESSION_STORE_COOKIE_NAME``.
        store : :class:`.Store`
            Defaults to the store configured for the application; see
            :func:`.stores.current_store`.

        """
        self.name = name
        self.store = store
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Register request hooks on ``app``."""
        self.app = app
        stores.init_app(app)
        if self.name is None:
            self.name = app.config['SESSION_STORE_COOKIE_NAME']
        self.auto_save = \
            stores.is_enabled(app.config['SESSION_STORE_AUTO_SAVE'])

        app.before_request(self.attach_session)
        app.after_request(self.write_cookies)
        app.teardown_request(self.clear)

    def attach_session(self) -> None:
        """Create a session for the request and attach it."""
        store = self.store
        if store is None:
            store = stores.current_store(self.app)
        writer = CookieWriter()
        request.environ[COOKIES_KEY] = writer
        request.environ[DEFAULT_KEY] = RequestSession(
            self.name, request._get_current_object(), store, writer,
            auto_save=self.auto_save
        )

    def write_cookies(self, response: Response) -> Response:
        """Set the cookies issued during the request on ``response``."""
        writer: Optional[CookieWriter] = request.environ.get(COOKIES_KEY)
        if writer is not None:
            writer.apply(response)
        return response

    def clear(self, exception: Optional[BaseException] = None) -> None:
        """Discard request-scoped session state."""
        clear_registry(request)
        request.environ.pop(DEFAULT_KEY, None)
        request.environ.pop(COOKIES_KEY, None)


def current_session() -> RequestSession:
    """
    Get the session attached to the current request.

    Raises
    ------
    :class:`SessionNotAttached`
        Raised if :class:`SessionMiddleware` is not installed, or if there is
        no request.

    """
    if not has_request_context():
        raise SessionNotAttached('No request context')
    try:
        session: RequestSession = request.environ[DEFAULT_KEY]
    except KeyError as e:
        raise SessionNotAttached('No session is attached to the request;'
                                 ' is SessionMiddleware installed?') from e
    return session
