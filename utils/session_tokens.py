"""
Session credentials: issuance, refresh-token rotation and logout.

Flow:
- login/register -> TokenIssuer.issue() mints an access/refresh pair and
  appends one refresh record for the user
- POST /auth/refresh -> RefreshHandler.rotate() consumes the presented
  refresh token exactly once and issues a replacement pair
- logout -> every record of the user is removed

SessionTokens wires the three onto a Flask app as an extension, reading
lifetimes and the signing secret from app.config.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import storage
from models.base_model import utcnow
from models.token_store import TokenStore
from models.user import User
from utils.exceptions import (
    InvalidToken,
    StoreWriteFailed,
    TokenError,
    TokenExpired,
    TokenReused,
    UnknownToken,
    UnknownUser,
)
from utils.security import generate_token_id
from utils.tokens import REFRESH, Secret, TokenCodec

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    token_id: str
    access_expires_in: int
    refresh_expires_at: datetime


class TokenIssuer:
    def __init__(self, codec: TokenCodec, access_ttl: timedelta, refresh_ttl: timedelta):
        self.codec = codec
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def issue(self, store: TokenStore, user: User) -> TokenPair:
        """
        Mint an access/refresh pair for user and persist its refresh record.
        Raises StoreWriteFailed (after rollback) if the record cannot be committed.
        """
        now = utcnow()
        signed_at = now.replace(tzinfo=timezone.utc)
        token_id = generate_token_id()

        access_token = self.codec.encode_access(user.id, user.role, self.access_ttl, now=signed_at)
        refresh_token = self.codec.encode_refresh(user.id, token_id, self.refresh_ttl, now=signed_at)
        expires_at = now + self.refresh_ttl

        store.append(user, token_id, refresh_token, created_at=now, expires_at=expires_at)
        store.commit()

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            token_id=token_id,
            access_expires_in=int(self.access_ttl.total_seconds()),
            refresh_expires_at=expires_at,
        )


class RefreshHandler:
    def __init__(self, codec: TokenCodec, issuer: TokenIssuer, revoke_family_on_reuse: bool = True):
        self.codec = codec
        self.issuer = issuer
        self.revoke_family_on_reuse = revoke_family_on_reuse

    def rotate(self, store: TokenStore, presented: str) -> Tuple[User, TokenPair]:
        """
        Exchange a refresh token for a new pair.

        Rejections (all RotationError): InvalidToken, UnknownUser, UnknownToken,
        TokenExpired, TokenReused. The presented record is consumed with a
        conditional update in the same transaction as the replacement, so a
        failed write (StoreWriteFailed) leaves it usable.
        """
        try:
            claims = self.codec.decode(presented, expected_type=REFRESH)
        except TokenError as exc:
            raise InvalidToken(str(exc)) from exc

        user_id, token_id = claims["sub"], claims["jti"]
        user = store.session.get(User, user_id)
        if user is None:
            raise UnknownUser(user_id)

        record = store.find(user_id, token_id)
        if record is None:
            raise UnknownToken(token_id)
        if record.expires_at <= utcnow():
            raise TokenExpired(token_id)
        if record.is_used:
            self._reused(store, user_id)

        if not store.mark_used(user_id, token_id):
            # a concurrent rotation consumed it between our read and this update
            store.rollback()
            self._reused(store, user_id)

        return user, self.issuer.issue(store, user)

    def _reused(self, store: TokenStore, user_id: str):
        logger.warning("Refresh token replay detected for user %s", user_id)
        if self.revoke_family_on_reuse:
            try:
                removed = store.clear(user_id)
                store.commit()
            except (SQLAlchemyError, StoreWriteFailed):
                # the replay is still refused; the family expires or is swept later
                store.rollback()
                logger.exception("Could not revoke refresh tokens of user %s", user_id)
            else:
                logger.warning("Revoked %d refresh token(s) of user %s", removed, user_id)
        raise TokenReused(user_id)


def logout(store: TokenStore, user_id: str) -> int:
    """Drop every refresh record of user_id; returns how many were removed."""
    removed = store.clear(user_id)
    store.commit()
    return removed


class SessionTokens:
    """Flask extension holding the codec, issuer and refresh handler."""

    def __init__(self, app=None):
        self.codec = None
        self.issuer = None
        self.refresh_handler = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        secret = Secret(app.config["JWT_SECRET"], app.config.get("JWT_ALGORITHM", "HS256"))
        self.codec = TokenCodec(secret)
        self.issuer = TokenIssuer(
            self.codec,
            access_ttl=app.config["ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=app.config["REFRESH_TOKEN_EXPIRES"],
        )
        self.refresh_handler = RefreshHandler(
            self.codec,
            self.issuer,
            revoke_family_on_reuse=app.config.get("REFRESH_REUSE_REVOKES_FAMILY", True),
        )
        app.extensions["session_tokens"] = self

    def store(self) -> TokenStore:
        """Token store bound to the current request's session."""
        return TokenStore(storage.get_session())


def get_session_tokens() -> SessionTokens:
    return current_app.extensions["session_tokens"]
