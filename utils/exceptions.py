"""
Error taxonomy for session credentials.

- TokenError: the codec could not accept a token (re-authenticate)
- RotationError: a decoded refresh token was refused by the rotation protocol
- StoreWriteFailed: the token store could not be written (retryable)

Every TokenError and RotationError maps to a generic 401 at the HTTP layer;
the class name is only for server-side logs.
"""


class TokenError(Exception):
    """Base class for codec failures."""


class MalformedToken(TokenError):
    pass


class WrongTokenType(MalformedToken):
    """An access token was presented where a refresh token was expected, or the reverse."""


class InvalidSignature(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


class RotationError(Exception):
    """Base class for refresh-token rotation rejections."""


class InvalidToken(RotationError):
    """The presented refresh token did not decode."""


class UnknownUser(RotationError):
    pass


class UnknownToken(RotationError):
    pass


class TokenExpired(RotationError):
    pass


class TokenReused(RotationError):
    """The refresh token was already consumed by an earlier rotation."""


class StoreWriteFailed(Exception):
    """Persisting token state failed; nothing was handed out."""
