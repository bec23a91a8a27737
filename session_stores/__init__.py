"""
Server-side sessions for Flask, kept in Redis or MongoDB.

The session cookie carries only a signed session ID; session values are
encoded with the same codecs and kept by a :class:`.sessions.Store`. See
:mod:`.stores` for the backends and :mod:`.middleware` for the Flask
integration.
"""

from .domain import Options, Session
from .sessions import RequestSession, Store
