"""
Token store: the per-user collection of refresh token records.

Every mutation is a single SQL statement so it stays correct when refresh
calls and cleanup sweeps run in parallel against the same rows:
- mark_used is a conditional UPDATE whose affected-row count decides which
  caller consumed the token
- the cleanup primitives are predicate-based bulk DELETEs
Nothing here commits implicitly; callers commit through commit().
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.refresh_token import RefreshToken
from models.user import User
from utils.exceptions import StoreWriteFailed

logger = logging.getLogger(__name__)


class TokenStore:
    def __init__(self, session: Session):
        self.session = session

    def append(self, user: User, token_id: str, token: str, created_at: datetime, expires_at: datetime) -> RefreshToken:
        """Stage a new unused record for user; also marks the user as active."""
        record = RefreshToken(
            user_id=user.id,
            token_id=token_id,
            token=token,
            is_used=False,
            created_at=created_at,
            updated_at=created_at,
            expires_at=expires_at,
        )
        self.session.add(record)
        user.updated_at = created_at
        return record

    def find(self, user_id: str, token_id: str) -> RefreshToken | None:
        return (
            self.session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.token_id == token_id)
            .first()
        )

    def records_for(self, user_id: str) -> List[RefreshToken]:
        return (
            self.session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id)
            .order_by(RefreshToken.created_at.asc())
            .all()
        )

    def mark_used(self, user_id: str, token_id: str) -> bool:
        """
        Flip is_used false -> true in one statement.
        Returns False when another caller got there first (or the record is gone).
        Raises StoreWriteFailed (after rollback) if the UPDATE itself fails.
        """
        try:
            updated = (
                self.session.query(RefreshToken)
                .filter(
                    RefreshToken.user_id == user_id,
                    RefreshToken.token_id == token_id,
                    RefreshToken.is_used == False,  # noqa: E712
                )
                .update({RefreshToken.is_used: True})
            )
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Could not consume refresh token of user %s", user_id)
            raise StoreWriteFailed("Could not consume refresh token") from exc
        return updated == 1

    def clear(self, user_id: str) -> int:
        """Remove every record owned by user_id."""
        return self.session.query(RefreshToken).filter(RefreshToken.user_id == user_id).delete()

    def remove_used(self, created_before: datetime) -> int:
        return (
            self.session.query(RefreshToken)
            .filter(RefreshToken.is_used == True, RefreshToken.created_at < created_before)  # noqa: E712
            .delete()
        )

    def remove_expired(self, now: datetime) -> int:
        return self.session.query(RefreshToken).filter(RefreshToken.expires_at <= now).delete()

    def users_over_cap(self, limit: int) -> List[str]:
        rows = (
            self.session.query(RefreshToken.user_id)
            .group_by(RefreshToken.user_id)
            .having(func.count(RefreshToken.id) > limit)
            .all()
        )
        return [user_id for (user_id,) in rows]

    def cap_per_user(self, limit: int) -> int:
        """
        Keep only the `limit` most recently created records of every user.
        The ranking is a subquery of the DELETE, so a record appended while
        the sweep runs is ranked with the rest instead of being dropped.
        """
        ranked = select(
            RefreshToken.id,
            func.row_number()
            .over(
                partition_by=RefreshToken.user_id,
                order_by=(RefreshToken.created_at.desc(), RefreshToken.id.desc()),
            )
            .label("position"),
        ).subquery()
        excess = select(ranked.c.id).where(ranked.c.position > limit)
        return (
            self.session.query(RefreshToken)
            .filter(RefreshToken.id.in_(excess))
            .delete(synchronize_session="fetch")
        )

    def clear_inactive(self, active_since: datetime) -> Tuple[int, int]:
        """
        Empty the store of every user whose updated_at is older than active_since.
        Inactivity is read by the DELETE itself, so a user who logs in
        meanwhile keeps their records. Returns (users cleared, records removed).
        """
        idle_users = select(User.id).where(User.updated_at < active_since)
        owners = (
            self.session.execute(
                delete(RefreshToken)
                .where(RefreshToken.user_id.in_(idle_users))
                .returning(RefreshToken.user_id)
                .execution_options(synchronize_session="fetch")
            )
            .scalars()
            .all()
        )
        return len(set(owners)), len(owners)

    def status(self, now: datetime, limit: int) -> Dict[str, int]:
        """Read-only counters describing the current token state."""
        return {
            "total_users": self.session.query(User).count(),
            "users_with_tokens": self.session.query(func.count(func.distinct(RefreshToken.user_id))).scalar() or 0,
            "total_tokens": self.session.query(RefreshToken).count(),
            "used_tokens": self.session.query(RefreshToken).filter(RefreshToken.is_used == True).count(),  # noqa: E712
            "expired_tokens": self.session.query(RefreshToken).filter(RefreshToken.expires_at <= now).count(),
            "users_over_cap": len(self.users_over_cap(limit)),
        }

    def commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Token store write failed")
            raise StoreWriteFailed("Could not persist token state") from exc

    def rollback(self):
        self.session.rollback()
