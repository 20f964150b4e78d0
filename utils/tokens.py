"""
Token codec:
- Secret value injected at construction (no module-level key)
- JWT encoding/verification via PyJWT
- two claim shapes: access ({sub, role}) and refresh ({sub, jti})
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from utils.exceptions import ExpiredToken, InvalidSignature, MalformedToken, WrongTokenType

ACCESS = "access"
REFRESH = "refresh"


class Secret:
    """Signing key for the token codec; never printed."""

    def __init__(self, value: str, algorithm: str = "HS256"):
        if not value:
            raise ValueError("secret must not be empty")
        self.value = value
        self.algorithm = algorithm

    def __repr__(self) -> str:
        return f"Secret(algorithm={self.algorithm!r}, value='***')"


class TokenCodec:
    def __init__(self, secret: Secret, issuer: str = "travel-agency-api"):
        self.secret = secret
        self.issuer = issuer

    def encode(self, claims: Dict[str, Any], ttl: timedelta, now: datetime | None = None) -> str:
        """Sign claims with an absolute expiry of now + ttl."""
        now = now or datetime.now(timezone.utc)
        payload = dict(claims)
        payload.update(
            {
                "iss": self.issuer,
                "iat": int(now.timestamp()),
                "exp": int((now + ttl).timestamp()),
            }
        )
        return jwt.encode(payload, self.secret.value, algorithm=self.secret.algorithm)

    def encode_access(self, user_id: str, role: str, ttl: timedelta, now: datetime | None = None) -> str:
        return self.encode({"sub": str(user_id), "role": role, "type": ACCESS}, ttl, now=now)

    def encode_refresh(self, user_id: str, token_id: str, ttl: timedelta, now: datetime | None = None) -> str:
        return self.encode({"sub": str(user_id), "jti": token_id, "type": REFRESH}, ttl, now=now)

    def decode(self, token: str, expected_type: str = ACCESS) -> Dict[str, Any]:
        """
        Verify signature and expiry (rejected once now >= exp) and check the
        type discriminator. Raises a TokenError subclass on any failure.
        """
        if not token or not isinstance(token, str):
            raise MalformedToken("Token missing")
        try:
            decoded = jwt.decode(
                token,
                self.secret.value,
                algorithms=[self.secret.algorithm],
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredToken("Token expired")
        except jwt.InvalidSignatureError:
            raise InvalidSignature("Token signature mismatch")
        except jwt.InvalidTokenError as exc:
            raise MalformedToken(f"Invalid token: {exc}")

        if decoded.get("type") != expected_type:
            raise WrongTokenType(f"Expected a {expected_type} token")
        if expected_type == REFRESH and not decoded.get("jti"):
            raise MalformedToken("Refresh token carries no token id")
        return decoded
