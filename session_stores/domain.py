"""Core session concepts shared by all stores."""

from typing import Any, Dict, List, NamedTuple, Optional

FLASHES_KEY = '_flash'


class Options(NamedTuple):
    """
    Cookie options for a session or session store.

    Fields are a subset of the attributes of an HTTP cookie.
    """

    path: str = '/'
    domain: Optional[str] = None

    max_age: int = 0
    """
    Lifetime of the cookie, in seconds.

    ``0`` means that no ``Max-Age`` attribute is sent, ``< 0`` means that the
    cookie (and the session) should be deleted now, ``> 0`` means that the
    cookie expires after ``max_age`` seconds.
    """

    secure: bool = False
    http_only: bool = False


class Session(object):
    """
    Server-side state for one cookie name.

    The ``values`` are what the store persists; the cookie only carries the
    signed ``id``.
    """

    def __init__(self, store: Any, name: str,
                 options: Optional[Options] = None) -> None:
        """Create an empty, new session bound to ``store``."""
        self.id = ''
        self.values: Dict[str, Any] = {}
        self.options = options if options is not None else Options()
        self.is_new = True
        self.store = store
        self._name = name

    @property
    def name(self) -> str:
        """The name of the session cookie."""
        return self._name

    def save(self, request: Any, response: Any) -> None:
        """Persist this session with its store."""
        self.store.save(request, response, self)

    def add_flash(self, value: Any, key: str = FLASHES_KEY) -> None:
        """Append a flash message under ``key``."""
        flashes = self.values.setdefault(key, [])
        flashes.append(value)

    def flashes(self, key: str = FLASHES_KEY) -> List[Any]:
        """Pop and return the flash messages stored under ``key``."""
        flashes: List[Any] = self.values.pop(key, [])
        return flashes

    def __repr__(self) -> str:
        return f'<Session {self.name!r} id={self.id!r} new={self.is_new}>'
