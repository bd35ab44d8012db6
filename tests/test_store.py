"""
tests/test_store.py -- Unit tests for AccountStore (auth/store.py).

Covers:
  - email normalization on every keyed read and write
  - tenant linkage validation by role
  - duplicate emails rejected by the unique constraint
  - reset token overwrite, lookup by token, atomic single-use consumption
  - email-code invalidation of the password channel
  - verification codes: replace on save, single use, expiry, purge
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Account

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestAccounts:
    def test_email_is_stored_lower_case_and_found_case_insensitively(self, store) -> None:
        store.create_account(Account(email="  Mixed.Case@Example.COM ", role="ADMIN"))
        account = store.find_by_email("mixed.case@example.com")
        assert account is not None
        assert account.email == "mixed.case@example.com"
        assert store.find_by_email("MIXED.CASE@EXAMPLE.COM") is not None

    def test_find_by_id(self, store) -> None:
        account_id = store.create_account(Account(email="admin@example.com", role="ADMIN"))
        account = store.find_by_id(account_id)
        assert account is not None
        assert account.email == "admin@example.com"
        assert store.find_by_id("missing") is None

    def test_unknown_email_returns_none(self, store) -> None:
        assert store.find_by_email("nobody@example.com") is None

    def test_duplicate_email_is_rejected(self, store) -> None:
        store.create_account(Account(email="dup@example.com", role="ADMIN"))
        with pytest.raises(IntegrityError):
            store.create_account(Account(email="DUP@example.com", role="ADMIN"))

    @pytest.mark.parametrize(
        "role,host_id,company_id",
        [
            ("HOST_ADMIN", None, None),
            ("HOST_TEAM_MEMBER", "H1", "A1"),
            ("ATTENDEE", None, None),
            ("ATTENDEE_ADMIN", "H1", None),
            ("ADMIN", "H1", None),
            ("SUPERUSER", None, None),
        ],
    )
    def test_tenant_linkage_must_match_role(self, store, role, host_id, company_id) -> None:
        with pytest.raises(ValueError):
            store.create_account(
                Account(email="t@example.com", role=role, host_id=host_id, attendee_company_id=company_id)
            )

    def test_password_hash_is_dropped_when_password_set_is_false(self, store) -> None:
        store.create_account(
            Account(email="a@example.com", role="ADMIN", hashed_password="$2b$12$stray", password_set=False)
        )
        account = store.find_by_email("a@example.com")
        assert account.hashed_password is None
        assert account.password_set is False

    def test_update_password_marks_password_set(self, store, seed_account) -> None:
        seed_account("p@example.com")
        assert store.update_password("P@Example.com", "new-hash")
        account = store.find_by_email("p@example.com")
        assert account.hashed_password == "new-hash"
        assert account.password_set is True

    def test_update_password_unknown_email(self, store) -> None:
        assert store.update_password("ghost@example.com", "hash") is False

    def test_otp_invalidation_clears_hash_and_flag(self, store, seed_account) -> None:
        seed_account("o@example.com", password="password123")
        assert store.update_otp_invalidation("o@example.com")
        account = store.find_by_email("o@example.com")
        assert account.hashed_password is None
        assert account.password_set is False
        assert not account.has_password


class TestResetTokens:
    def test_overwrite_leaves_only_latest_token(self, store, seed_account) -> None:
        seed_account("r@example.com")
        store.update_reset_token("r@example.com", "11111111-1111-4111-8111-111111111111", T0 + timedelta(minutes=15))
        store.update_reset_token("r@example.com", "22222222-2222-4222-8222-222222222222", T0 + timedelta(minutes=15))
        assert not store.holds_reset_token("11111111-1111-4111-8111-111111111111")
        account = store.find_by_reset_token("22222222-2222-4222-8222-222222222222", T0)
        assert account is not None
        assert account.reset_token_expiry == T0 + timedelta(minutes=15)

    def test_find_by_reset_token_ignores_expired(self, store, seed_account) -> None:
        seed_account("r@example.com")
        token = "33333333-3333-4333-8333-333333333333"
        store.update_reset_token("r@example.com", token, T0)
        assert store.find_by_reset_token(token, T0) is None
        assert store.find_by_reset_token(token, T0 - timedelta(seconds=1)) is not None
        assert store.holds_reset_token(token)

    def test_consume_is_single_use(self, store, seed_account) -> None:
        seed_account("r@example.com")
        token = "44444444-4444-4444-8444-444444444444"
        store.update_reset_token("r@example.com", token, T0 + timedelta(minutes=15))

        assert store.consume_reset_token(token, "hash-1", T0) is True
        assert store.consume_reset_token(token, "hash-2", T0) is False

        account = store.find_by_email("r@example.com")
        assert account.hashed_password == "hash-1"
        assert account.password_set is True
        assert account.reset_token is None
        assert account.reset_token_expiry is None

    def test_consume_refuses_expired_token(self, store, seed_account) -> None:
        seed_account("r@example.com")
        token = "55555555-5555-4555-8555-555555555555"
        store.update_reset_token("r@example.com", token, T0)
        assert store.consume_reset_token(token, "hash", T0) is False
        assert store.find_by_email("r@example.com").hashed_password is None


class TestVerificationCodes:
    def test_code_is_single_use(self, store) -> None:
        store.save_verification_code("v@example.com", "digest-1", T0 + timedelta(minutes=10))
        assert store.consume_verification_code("V@example.com", "digest-1", T0) is True
        assert store.consume_verification_code("v@example.com", "digest-1", T0) is False

    def test_new_code_replaces_pending_one(self, store) -> None:
        store.save_verification_code("v@example.com", "digest-1", T0 + timedelta(minutes=10))
        store.save_verification_code("v@example.com", "digest-2", T0 + timedelta(minutes=10))
        assert store.consume_verification_code("v@example.com", "digest-1", T0) is False
        assert store.consume_verification_code("v@example.com", "digest-2", T0) is True

    def test_code_for_another_email_does_not_match(self, store) -> None:
        store.save_verification_code("v@example.com", "digest-1", T0 + timedelta(minutes=10))
        assert store.consume_verification_code("w@example.com", "digest-1", T0) is False

    def test_expired_code_is_refused_and_purged(self, store) -> None:
        store.save_verification_code("v@example.com", "digest-1", T0)
        store.save_verification_code("w@example.com", "digest-2", T0 + timedelta(minutes=10))
        assert store.consume_verification_code("v@example.com", "digest-1", T0) is False
        assert store.purge_expired_codes(T0) == 1
        assert store.consume_verification_code("w@example.com", "digest-2", T0) is True

    def test_ping(self, store) -> None:
        assert store.ping() is True
