"""Exceptions raised by the session layer."""


class SessionError(RuntimeError):
    """Base class for session errors."""


class ConfigurationError(SessionError):
    """A store or codec was constructed with invalid parameters."""


class SessionNotAttached(SessionError):
    """No session was attached to the current request."""


class CodecError(SessionError):
    """A value could not be encoded or decoded."""


class InvalidCookie(CodecError):
    """A signed value is malformed, forged, or bound to another name."""


class ExpiredCookie(InvalidCookie):
    """A signed value is older than the codec's max age."""


class SessionStoreError(SessionError):
    """The backend failed to carry out an operation."""


class StoreUnavailable(SessionStoreError):
    """The backend did not respond to a liveness check."""


class SessionLoadFailed(SessionStoreError):
    """Failed to read a session from the backend."""


class SessionUnknown(SessionStoreError):
    """Failed to locate a session in the backend."""


class InvalidSessionID(SessionStoreError):
    """The session ID is not a valid document identifier."""


class SessionDeletionFailed(SessionStoreError):
    """Failed to delete a session in the backend."""


class SessionSaveFailed(SessionStoreError):
    """Failed to write a session to the backend."""


class SessionTooLarge(SessionSaveFailed):
    """The encoded session exceeds the store's maximum length."""


class InvalidModifiedValue(SessionSaveFailed):
    """The ``modified`` value of a session is not a timestamp."""
