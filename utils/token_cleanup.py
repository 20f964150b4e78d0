"""
Scheduled refresh-token cleanup.

Four independent steps, each one bulk statement committed on its own:
1. used tokens older than the grace window
2. expired tokens
3. per-user cap (keep the newest N)
4. every token of users inactive for too long

A failing step is rolled back and reported; the others still run and the
next scheduled run retries it. Running the job twice in a row without new
logins removes nothing the second time.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from models.base_model import utcnow
from models.token_store import TokenStore
from utils.exceptions import StoreWriteFailed

logger = logging.getLogger(__name__)


@dataclass
class CleanupPolicy:
    used_grace: timedelta = timedelta(hours=1)
    max_per_user: int = 3
    inactive_after: timedelta = timedelta(days=60)

    @classmethod
    def from_config(cls, config) -> "CleanupPolicy":
        return cls(
            used_grace=config["TOKEN_CLEANUP_USED_GRACE"],
            max_per_user=config["TOKEN_CLEANUP_MAX_PER_USER"],
            inactive_after=config["TOKEN_CLEANUP_INACTIVE_AFTER"],
        )


@dataclass
class CleanupReport:
    used_tokens_removed: int = 0
    expired_tokens_removed: int = 0
    excess_tokens_removed: int = 0
    inactive_tokens_removed: int = 0
    inactive_users_cleared: int = 0
    execution_time_ms: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def total_removed(self) -> int:
        return (
            self.used_tokens_removed
            + self.expired_tokens_removed
            + self.excess_tokens_removed
            + self.inactive_tokens_removed
        )

    def stats(self) -> Dict[str, Any]:
        return {
            "used_tokens_removed": self.used_tokens_removed,
            "expired_tokens_removed": self.expired_tokens_removed,
            "excess_tokens_removed": self.excess_tokens_removed,
            "inactive_tokens_removed": self.inactive_tokens_removed,
            "inactive_users_cleared": self.inactive_users_cleared,
            "total_removed": self.total_removed,
            "execution_time_ms": self.execution_time_ms,
        }


def _run_step(store: TokenStore, report: CleanupReport, name: str, step) -> None:
    """Run one step and record its counters only once its commit succeeded."""
    try:
        counters = step()
        store.commit()
    except (SQLAlchemyError, StoreWriteFailed) as exc:
        store.rollback()
        logger.exception("Token cleanup step %s failed", name)
        report.errors.append({"step": name, "error": exc.__class__.__name__})
        return
    for key, value in counters.items():
        setattr(report, key, value)


def run_token_cleanup(store: TokenStore, policy: CleanupPolicy, now: datetime | None = None) -> CleanupReport:
    now = now or utcnow()
    started = time.monotonic()
    report = CleanupReport()
    logger.info("Starting token cleanup (now=%s)", now.isoformat())

    def inactive():
        users, removed = store.clear_inactive(now - policy.inactive_after)
        return {"inactive_users_cleared": users, "inactive_tokens_removed": removed}

    _run_step(store, report, "used_tokens",
              lambda: {"used_tokens_removed": store.remove_used(now - policy.used_grace)})
    _run_step(store, report, "expired_tokens",
              lambda: {"expired_tokens_removed": store.remove_expired(now)})
    _run_step(store, report, "excess_tokens",
              lambda: {"excess_tokens_removed": store.cap_per_user(policy.max_per_user)})
    _run_step(store, report, "inactive_users", inactive)

    report.execution_time_ms = int((time.monotonic() - started) * 1000)
    if report.success:
        logger.info("Token cleanup completed: %s", report.stats())
    else:
        logger.warning("Token cleanup finished with %d failed step(s): %s", len(report.errors), report.stats())
    return report


def token_cleanup_status(store: TokenStore, policy: CleanupPolicy, now: datetime | None = None) -> Dict[str, int]:
    return store.status(now or utcnow(), policy.max_per_user)
