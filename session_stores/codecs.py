"""
Signing and encryption of cookie and session values.

A :class:`Codec` holds one key pair. The hash key signs a JWT that binds the
serialized value to a name and an issue time; the optional block key
encrypts the serialized value before it is signed. Stores are configured
with a list of codecs so that keys can be rotated: values are always encoded
with the first codec, and decoding tries each codec in turn.
"""

import base64
import hashlib
import logging
import secrets
import time
from datetime import datetime
from typing import Any, List, Optional, Sequence, Union

import jwt
from cryptography.fernet import Fernet, InvalidToken as DecryptionFailed
from flask.json.tag import JSONTag, TaggedJSONSerializer

from .exceptions import CodecError, ConfigurationError, ExpiredCookie, \
    InvalidCookie

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'
DEFAULT_MAX_AGE = 86400 * 30
"""Values older than this (in seconds) are rejected; 0 disables the check."""

Key = Union[str, bytes]


def _as_bytes(key: Key) -> bytes:
    if isinstance(key, str):
        return key.encode('utf-8')
    return key


class TagISODateTime(JSONTag):
    """Datetimes to the microsecond, naive or aware."""

    __slots__ = ()
    key = ' d'

    def check(self, value: Any) -> bool:
        return isinstance(value, datetime)

    def to_json(self, value: Any) -> str:
        return value.isoformat()

    def to_python(self, value: Any) -> datetime:
        return datetime.fromisoformat(value)


def make_serializer() -> TaggedJSONSerializer:
    """Flask's tagged JSON, with datetimes kept in ISO 8601 form."""
    serializer = TaggedJSONSerializer()
    serializer.register(TagISODateTime, force=True, index=0)
    return serializer


def generate_random_key(length: int = 32) -> bytes:
    """Generate ``length`` cryptographically secure random bytes."""
    return secrets.token_bytes(length)


class Codec(object):
    """Encodes and decodes values with a single key pair."""

    def __init__(self, hash_key: Key, block_key: Optional[Key] = None,
                 max_age: int = DEFAULT_MAX_AGE) -> None:
        """
        Configure the codec.

        Parameters
        ----------
        hash_key : str or bytes
            Secret used to sign values. Required.
        block_key : str or bytes
            Secret used to encrypt values. If empty, values are signed but
            not encrypted.
        max_age : int
            Maximum age of a value, in seconds.

        """
        if not hash_key:
            raise ConfigurationError('A hash key is required')
        self._hash_key = _as_bytes(hash_key)
        self._fernet: Optional[Fernet] = None
        if block_key:
            digest = hashlib.sha256(_as_bytes(block_key)).digest()
            self._fernet = Fernet(base64.urlsafe_b64encode(digest))
        self.max_age = max_age
        self._serializer = make_serializer()

    @property
    def encrypts(self) -> bool:
        """Whether this codec encrypts values."""
        return self._fernet is not None

    def set_max_age(self, max_age: int) -> None:
        """Change the maximum age accepted when decoding."""
        self.max_age = max_age

    def encode(self, name: str, value: Any) -> str:
        """Serialize, optionally encrypt, and sign ``value`` for ``name``."""
        try:
            payload = self._serializer.dumps(value)
        except (TypeError, ValueError) as e:
            raise CodecError(f'Cannot serialize value for {name}: {e}') from e
        if self._fernet is not None:
            payload = self._fernet.encrypt(payload.encode('utf-8')) \
                .decode('ascii')
        claims = {'name': name, 'value': payload, 'iat': int(time.time())}
        token: str = jwt.encode(claims, self._hash_key, algorithm=ALGORITHM)
        return token

    def decode(self, name: str, value: Union[str, bytes]) -> Any:
        """
        Verify and decode a value produced by :meth:`encode`.

        Raises
        ------
        :class:`InvalidCookie`
            Raised if the signature does not match, if the value was issued
            for another name, or if it cannot be decrypted or deserialized.
        :class:`ExpiredCookie`
            Raised if the value is older than :attr:`max_age`.

        """
        try:
            claims = jwt.decode(value, self._hash_key, algorithms=[ALGORITHM],
                                options={'require': ['name', 'value', 'iat']})
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidCookie(f'Invalid signed value: {e}') from e

        if claims['name'] != name:
            raise InvalidCookie('Value was issued for another name')
        if self.max_age > 0 and claims['iat'] < time.time() - self.max_age:
            raise ExpiredCookie('Value has expired')

        payload = claims['value']
        if not isinstance(payload, str):
            raise InvalidCookie('Malformed payload')
        if self._fernet is not None:
            try:
                payload = self._fernet.decrypt(payload.encode('ascii')) \
                    .decode('utf-8')
            except (DecryptionFailed, UnicodeError) as e:
                raise InvalidCookie('Value could not be decrypted') from e
        try:
            return self._serializer.loads(payload)
        except (ValueError, TypeError, KeyError) as e:
            raise InvalidCookie(f'Value could not be deserialized: {e}') \
                from e


def codecs_from_pairs(*key_pairs: Optional[Key]) -> List[Codec]:
    """
    Build a list of codecs from hash and block keys.

    Keys are consumed two at a time, as ``(hash_key, block_key)``. The block
    key of the last pair may be omitted.
    """
    codecs = []
    for i in range(0, len(key_pairs), 2):
        hash_key = key_pairs[i]
        if not hash_key:
            raise ConfigurationError(f'Missing hash key at position {i}')
        block_key = key_pairs[i + 1] if i + 1 < len(key_pairs) else None
        codecs.append(Codec(hash_key, block_key))
    return codecs


def encode_multi(name: str, value: Any, codecs: Sequence[Codec]) -> str:
    """Encode ``value`` with the first codec."""
    if not codecs:
        raise CodecError('No codecs are configured')
    return codecs[0].encode(name, value)


def decode_multi(name: str, value: Union[str, bytes],
                 codecs: Sequence[Codec]) -> Any:
    """
    Decode ``value`` with the first codec that accepts it.

    If no codec accepts the value, the error from the first codec is raised.
    """
    if not codecs:
        raise InvalidCookie('No codecs are configured')
    errors: List[InvalidCookie] = []
    for codec in codecs:
        try:
            return codec.decode(name, value)
        except InvalidCookie as e:
            errors.append(e)
    logger.debug('No codec accepted value for %s: %s', name, errors)
    raise errors[0]
