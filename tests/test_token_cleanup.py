from datetime import timedelta

from sqlalchemy.exc import OperationalError

from models.base_model import utcnow
from models.token_store import TokenStore
from utils.token_cleanup import CleanupPolicy, run_token_cleanup, token_cleanup_status

POLICY = CleanupPolicy()


def test_cap_removes_the_two_oldest_of_five(store, make_user, seed_token):
    user = make_user()
    now = utcnow()
    ids = [seed_token(user, created_at=now - timedelta(hours=5 - i)) for i in range(5)]

    report = run_token_cleanup(store, POLICY)

    assert report.success
    assert report.excess_tokens_removed == 2
    assert report.total_removed == 2
    assert [r.token_id for r in store.records_for(user.id)] == ids[2:]


def test_used_tokens_have_a_grace_window(store, make_user, seed_token):
    user = make_user()
    now = utcnow()
    old = seed_token(user, created_at=now - timedelta(hours=2), used=True)
    recent = seed_token(user, created_at=now - timedelta(minutes=10), used=True)

    report = run_token_cleanup(store, POLICY)

    assert report.used_tokens_removed == 1
    assert store.find(user.id, old) is None
    assert store.find(user.id, recent) is not None


def test_expired_tokens_are_removed_regardless_of_use(store, make_user, seed_token):
    user = make_user()
    now = utcnow()
    seed_token(user, created_at=now - timedelta(days=8), expires_at=now - timedelta(days=1))
    seed_token(user, created_at=now - timedelta(minutes=5), expires_at=now - timedelta(minutes=1), used=True)
    live = seed_token(user)

    report = run_token_cleanup(store, POLICY)

    assert report.expired_tokens_removed == 2
    assert [r.token_id for r in store.records_for(user.id)] == [live]


def test_inactive_users_lose_all_tokens(store, make_user, seed_token):
    idle = make_user("idle@example.com")
    active = make_user("active@example.com")
    seed_token(idle)
    seed_token(idle)
    seed_token(active)
    idle.updated_at = utcnow() - timedelta(days=61)
    store.commit()

    report = run_token_cleanup(store, POLICY)

    assert report.inactive_users_cleared == 1
    assert report.inactive_tokens_removed == 2
    assert store.records_for(idle.id) == []
    assert len(store.records_for(active.id)) == 1


def test_no_user_exceeds_the_cap_after_a_run(store, make_user, seed_token):
    now = utcnow()
    for n in range(3):
        user = make_user(f"user{n}@example.com")
        for i in range(2 + 2 * n):
            seed_token(user, created_at=now - timedelta(minutes=i))

    run_token_cleanup(store, POLICY)

    assert store.users_over_cap(POLICY.max_per_user) == []


def test_second_run_removes_nothing(store, make_user, seed_token):
    now = utcnow()
    user = make_user()
    for i in range(6):
        seed_token(user, created_at=now - timedelta(hours=i), used=i % 2 == 0)
    seed_token(user, created_at=now - timedelta(days=9), expires_at=now - timedelta(days=2))

    first = run_token_cleanup(store, POLICY)
    second = run_token_cleanup(store, POLICY)

    assert first.total_removed > 0
    assert second.total_removed == 0
    assert second.inactive_users_cleared == 0


def test_failed_step_is_reported_and_others_still_run(store, make_user, seed_token, monkeypatch):
    user = make_user()
    now = utcnow()
    seed_token(user, created_at=now - timedelta(hours=3), used=True)
    seed_token(user, created_at=now - timedelta(days=8), expires_at=now - timedelta(days=1))
    for i in range(4):
        seed_token(user, created_at=now - timedelta(minutes=i))

    def broken(self, now):
        raise OperationalError("DELETE", {}, Exception("database is locked"))

    monkeypatch.setattr(TokenStore, "remove_expired", broken)

    report = run_token_cleanup(store, POLICY)

    assert report.success is False
    assert report.errors == [{"step": "expired_tokens", "error": "OperationalError"}]
    assert report.used_tokens_removed == 1
    assert report.expired_tokens_removed == 0
    assert report.excess_tokens_removed == 2


def test_status_is_read_only(store, make_user, seed_token):
    user = make_user()
    now = utcnow()
    seed_token(user, created_at=now - timedelta(hours=2), used=True)
    seed_token(user, created_at=now - timedelta(days=8), expires_at=now - timedelta(days=1))
    for _ in range(2):
        seed_token(user)
    make_user("nobody@example.com")

    stats = token_cleanup_status(store, POLICY)

    assert stats == {
        "total_users": 2,
        "users_with_tokens": 1,
        "total_tokens": 4,
        "used_tokens": 1,
        "expired_tokens": 1,
        "users_over_cap": 1,
    }
    assert len(store.records_for(user.id)) == 4
