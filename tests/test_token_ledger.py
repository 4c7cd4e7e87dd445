"""
Tests for the token ledger: account creation, atomic spends, audit log.
"""
import threading
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from app.core.token_costs import STARTING_TOKENS
from app.db.base import Base
from app.models.token_log import TokenLog
from app.models.user import User
from app.services.token_ledger import (
    NotAuthenticated,
    SpendStatus,
    ensure_account,
    get_balance,
    spend,
)


class TestEnsureAccount:

    def test_new_user_gets_starting_grant(self, db):
        user = ensure_account(db, "sb-1", "Founder@Example.com")
        assert user.tokens == STARTING_TOKENS == 100
        assert user.email == "founder@example.com"

    def test_repeat_calls_do_not_reset_balance(self, db):
        user = ensure_account(db, "sb-1")
        spend(db, user.id, 30)
        again = ensure_account(db, "sb-1")
        assert again.id == user.id
        assert again.tokens == 70
        assert db.query(User).count() == 1

    def test_existing_account_is_not_modified_on_login(self, db):
        ensure_account(db, "sb-1")
        again = ensure_account(db, "sb-1", "later@example.com")
        assert again.email is None
        assert again.tokens == 100

    def test_missing_identity_is_rejected(self, db):
        with pytest.raises(NotAuthenticated):
            ensure_account(db, "")


class TestSpend:

    def test_balance_after_spends(self, db):
        user = ensure_account(db, "sb-1")
        costs = [5, 10, 5, 25]
        for cost in costs:
            assert spend(db, user.id, cost).ok
        assert get_balance(db, user.id) == STARTING_TOKENS - sum(costs)

    def test_returns_remaining_balance(self, db):
        user = ensure_account(db, "sb-1")
        result = spend(db, user.id, 5)
        assert result.status == SpendStatus.OK
        assert result.remaining == 95

    def test_insufficient_balance_leaves_state_unchanged(self, db):
        user = ensure_account(db, "sb-1")
        assert spend(db, user.id, 96).ok
        result = spend(db, user.id, 5)
        assert result.status == SpendStatus.INSUFFICIENT_BALANCE
        assert result.remaining is None
        assert get_balance(db, user.id) == 4

    def test_exact_balance_can_be_spent(self, db):
        user = ensure_account(db, "sb-1")
        assert spend(db, user.id, 100).remaining == 0
        assert spend(db, user.id, 1).status == SpendStatus.INSUFFICIENT_BALANCE

    @pytest.mark.parametrize("cost", [0, -5, 2.5, True])
    def test_cost_must_be_positive_integer(self, db, cost):
        user = ensure_account(db, "sb-1")
        with pytest.raises(ValueError):
            spend(db, user.id, cost)

    def test_requires_authenticated_user(self, db):
        with pytest.raises(NotAuthenticated):
            spend(db, None, 5)

    def test_unknown_account_is_not_authenticated(self, db):
        with pytest.raises(NotAuthenticated):
            spend(db, 999, 5)

    def test_database_failure_is_unavailable_without_local_decrement(self):
        mock_db = MagicMock()
        mock_db.query.return_value.filter.return_value.update.side_effect = OperationalError(
            "UPDATE users", {}, Exception("connection reset")
        )
        result = spend(mock_db, 1, 5)
        assert result.status == SpendStatus.UNAVAILABLE
        assert result.remaining is None
        assert "unavailable" in result.reason.lower()
        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()


class TestTokenLog:

    def test_success_appends_audit_entry(self, db):
        user = ensure_account(db, "sb-1")
        spend(db, user.id, 5, {"type": "email", "rowKey": "k1"})
        log = db.query(TokenLog).one()
        assert (log.user_id, log.cost, log.remaining) == (user.id, 5, 95)
        assert log.event_metadata == {"type": "email", "rowKey": "k1"}

    def test_failed_spend_writes_nothing(self, db):
        user = ensure_account(db, "sb-1")
        spend(db, user.id, 500)
        assert db.query(TokenLog).count() == 0

    def test_deferred_append(self, db):
        user = ensure_account(db, "sb-1")
        deferred = []
        spend(db, user.id, 10, {"type": "calendly"}, defer=lambda *args: deferred.append(args))
        assert db.query(TokenLog).count() == 0
        func, *args = deferred[0]
        func(*args)
        assert db.query(TokenLog).one().remaining == 90

    def test_audit_failure_does_not_undo_spend(self, db):
        user = ensure_account(db, "sb-1")
        TokenLog.__table__.drop(db.get_bind())
        result = spend(db, user.id, 5)
        assert result.ok
        assert get_balance(db, user.id) == 95


class TestConcurrentSpend:

    def test_only_one_of_two_overlapping_spends_succeeds(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'ledger.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)

        setup = Session()
        user_id = ensure_account(setup, "sb-1").id
        setup.query(User).filter(User.id == user_id).update({User.tokens: 10})
        setup.commit()
        setup.close()

        barrier = threading.Barrier(2)
        results = []

        def worker():
            session = Session()
            try:
                barrier.wait()
                results.append(spend(session, user_id, 6))
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        statuses = sorted(r.status.value for r in results)
        assert statuses == [SpendStatus.INSUFFICIENT_BALANCE.value, SpendStatus.OK.value]

        check = Session()
        assert get_balance(check, user_id) == 4
        check.close()
        engine.dispose()
