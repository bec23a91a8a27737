"""
Store capability, per-request registry, and the request session handle.

A :class:`Store` creates sessions from requests and persists them. Within a
request, sessions are obtained through the :class:`Registry` so that
repeated lookups of the same name return the same :class:`.domain.Session`.
Handler code works with a :class:`RequestSession`, which resolves its
session lazily and writes changes through to the store.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pytz import UTC

from .codecs import Codec
from .domain import FLASHES_KEY, Options, Session
from .exceptions import SessionError

logger = logging.getLogger(__name__)

REGISTRY_KEY = 'session_stores.registry'
"""Key of the session registry in the WSGI environ."""

EPOCH_EXPIRES = datetime.fromtimestamp(1, tz=UTC)


def cookie_kwargs(options: Options) -> Dict[str, Any]:
    """
    Build keyword arguments for ``set_cookie`` from session options.

    A positive ``max_age`` sets both ``Max-Age`` and ``Expires``; a negative
    one expires the cookie immediately; zero sets neither.
    """
    kwargs: Dict[str, Any] = {
        'path': options.path,
        'domain': options.domain or None,
        'secure': options.secure,
        'httponly': options.http_only,
    }
    if options.max_age > 0:
        kwargs['max_age'] = options.max_age
        kwargs['expires'] = datetime.now(tz=UTC) \
            + timedelta(seconds=options.max_age)
    elif options.max_age < 0:
        kwargs['max_age'] = 0
        kwargs['expires'] = EPOCH_EXPIRES
    return kwargs


class Store(ABC):
    """
    Creates and persists sessions.

    Subclasses implement :meth:`new` and :meth:`save`. ``options`` are the
    defaults copied into every new session; ``codecs`` sign cookies and
    session payloads.
    """

    options: Options
    codecs: List[Codec]

    def get(self, request: Any, name: str) -> Session:
        """Get the session for ``name``, registering it for the request."""
        return get_registry(request).get(self, name)

    @abstractmethod
    def new(self, request: Any, name: str) -> Session:
        """Create a session for ``name`` without registering it."""

    @abstractmethod
    def save(self, request: Any, response: Any, session: Session) -> None:
        """Persist ``session`` and set its cookie on ``response``."""

    def blank(self, name: str) -> Session:
        """Create an empty, new session with the default options."""
        return Session(self, name, options=self.options)

    def set_options(self, options: Options) -> None:
        """Replace the default options for new sessions."""
        self.options = options

    def set_max_age(self, max_age: int) -> None:
        """
        Change the maximum age of cookies and of signed session data.

        To remove a single session, set ``max_age`` on that session's options
        to a negative value and save it instead.
        """
        self.options = self.options._replace(max_age=max_age)
        for codec in self.codecs:
            codec.set_max_age(max_age)


class Registry(object):
    """Sessions obtained during a single request."""

    def __init__(self, request: Any) -> None:
        self.request = request
        self._sessions: Dict[str, Session] = {}

    def get(self, store: Store, name: str) -> Session:
        """Return the registered session for ``name``, or create one."""
        if name not in self._sessions:
            self._sessions[name] = store.new(self.request, name)
        return self._sessions[name]

    def save(self, response: Any) -> None:
        """Save every session in the registry."""
        for session in self._sessions.values():
            session.save(self.request, response)


def get_registry(request: Any) -> Registry:
    """Get the session registry for ``request``."""
    registry: Optional[Registry] = request.environ.get(REGISTRY_KEY)
    if registry is None:
        registry = Registry(request)
        request.environ[REGISTRY_KEY] = registry
    return registry


def clear_registry(request: Any) -> None:
    """Discard the session registry for ``request``."""
    request.environ.pop(REGISTRY_KEY, None)


class RequestSession(object):
    """
    A named session bound to a store, a request and a response.

    Changes made with :meth:`set` are written through to the store
    immediately (unless ``auto_save`` is disabled); other changes are
    persisted by :meth:`save`.
    """

    def __init__(self, name: str, request: Any, store: Store, response: Any,
                 auto_save: bool = True) -> None:
        self.name = name
        self.request = request
        self.store = store
        self.response = response
        self.auto_save = auto_save
        self.value_changed = False
        self._session: Optional[Session] = None

    def get_session(self) -> Session:
        """
        Resolve the underlying session, once per handle.

        Failures to load the session are logged, and an empty new session is
        used in its place.
        """
        if self._session is None:
            try:
                self._session = self.store.get(self.request, self.name)
            except SessionError as e:
                logger.error('Could not load session %s: %s', self.name, e)
                self._session = self.store.blank(self.name)
        return self._session

    @property
    def is_new(self) -> bool:
        """Whether the session was not loaded from the store."""
        return self.get_session().is_new

    @property
    def id(self) -> str:
        """Session ID; empty until the session is first saved."""
        return self.get_session().id

    def get(self, key: str, default: Any = None) -> Any:
        """Get the value stored at ``key``."""
        return self.get_session().values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Store ``value`` at ``key`` and write the session through.

        Errors from the write are logged, not raised. Use
        :meth:`set_and_save` to have them raised.
        """
        self.get_session().values[key] = value
        self.value_changed = True
        if self.auto_save:
            try:
                self.save()
            except SessionError as e:
                logger.error('Failed to save session %s: %s', self.name, e)

    def set_and_save(self, key: str, value: Any) -> None:
        """Store ``value`` at ``key`` and save, raising on failure."""
        self.get_session().values[key] = value
        self.value_changed = True
        self.save()

    def delete(self, key: str) -> None:
        """Remove ``key`` from the session."""
        self.get_session().values.pop(key, None)
        self.value_changed = True

    def clear(self) -> None:
        """Remove all keys from the session."""
        for key in list(self.get_session().values):
            self.delete(key)

    def add_flash(self, value: Any, key: str = FLASHES_KEY) -> None:
        """Add a flash message."""
        self.get_session().add_flash(value, key)
        self.value_changed = True

    def flashes(self, key: str = FLASHES_KEY) -> List[Any]:
        """Pop the flash messages."""
        self.value_changed = True
        return self.get_session().flashes(key)

    def set_options(self, options: Options) -> None:
        """Replace the cookie options used when this session is saved."""
        self.get_session().options = options

    def save(self) -> None:
        """Persist the session if it has changed."""
        if not self.value_changed:
            return
        self.get_session().save(self.request, self.response)
        self.value_changed = False

    flush = save
