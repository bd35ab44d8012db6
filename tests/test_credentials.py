"""
tests/test_credentials.py -- Unit tests for CredentialService (auth/credentials.py).

The clock fixture is frozen so expiry boundaries are tested to the second:
a token or code is valid while now < expiry and dead from expiry onward.
"""

from __future__ import annotations

import logging
import uuid

import pytest

from auth.errors import NotificationFailed, TokenExpired, TokenNotFound, ValidationFailed
from auth.tokens import verify_password
from notify.base import NotificationKind


class TestOneTimeCodes:
    def test_issued_code_verifies_once(self, credentials) -> None:
        code = credentials.issue_one_time_code("Code@Example.com")
        assert credentials.verify_one_time_code("code@example.com", code)
        assert not credentials.verify_one_time_code("code@example.com", code)

    def test_code_expires_at_max_age(self, credentials, clock, settings) -> None:
        code = credentials.issue_one_time_code("a@example.com")
        clock.advance(settings.otp_max_age_seconds)
        assert not credentials.verify_one_time_code("a@example.com", code)

    def test_code_valid_one_second_before_expiry(self, credentials, clock, settings) -> None:
        code = credentials.issue_one_time_code("a@example.com")
        clock.advance(settings.otp_max_age_seconds - 1)
        assert credentials.verify_one_time_code("a@example.com", code)

    def test_new_code_supersedes_old(self, credentials) -> None:
        first = credentials.issue_one_time_code("a@example.com")
        second = credentials.issue_one_time_code("a@example.com")
        assert not credentials.verify_one_time_code("a@example.com", first)
        assert credentials.verify_one_time_code("a@example.com", second)

    def test_code_is_bound_to_its_email(self, credentials) -> None:
        code = credentials.issue_one_time_code("a@example.com")
        assert not credentials.verify_one_time_code("b@example.com", code)


class TestResetTokens:
    def test_round_trip_sets_password_and_is_single_use(self, credentials, store, seed_account) -> None:
        account = seed_account("r@example.com")
        token = credentials.issue_reset_token(account)

        credentials.consume_reset_token(token, "brand-new-pass")

        updated = store.find_by_email("r@example.com")
        assert updated.password_set is True
        assert verify_password("brand-new-pass", updated.hashed_password)
        assert updated.reset_token is None
        assert updated.reset_token_expiry is None

        with pytest.raises(TokenNotFound):
            credentials.consume_reset_token(token, "another-pass-1")

    def test_issue_keeps_existing_password_working(self, credentials, store, seed_account) -> None:
        account = seed_account("r@example.com", password="old-password")
        credentials.issue_reset_token(account)
        updated = store.find_by_email("r@example.com")
        assert updated.password_set is True
        assert verify_password("old-password", updated.hashed_password)

    def test_expiry_is_ttl_from_now(self, credentials, store, clock, settings, seed_account) -> None:
        account = seed_account("r@example.com")
        credentials.issue_reset_token(account)
        updated = store.find_by_email("r@example.com")
        assert (updated.reset_token_expiry - clock()).total_seconds() == settings.reset_token_ttl_seconds

    def test_valid_one_second_before_expiry(self, credentials, clock, settings, seed_account) -> None:
        token = credentials.issue_reset_token(seed_account("r@example.com"))
        clock.advance(settings.reset_token_ttl_seconds - 1)
        credentials.consume_reset_token(token, "brand-new-pass")

    def test_expired_at_exact_expiry(self, credentials, store, clock, settings, seed_account) -> None:
        token = credentials.issue_reset_token(seed_account("r@example.com", password="old-password"))
        clock.advance(settings.reset_token_ttl_seconds)
        with pytest.raises(TokenExpired):
            credentials.consume_reset_token(token, "brand-new-pass")
        assert verify_password("old-password", store.find_by_email("r@example.com").hashed_password)

    def test_second_issue_supersedes_first(self, credentials, seed_account) -> None:
        account = seed_account("r@example.com")
        first = credentials.issue_reset_token(account)
        second = credentials.issue_reset_token(account)
        with pytest.raises(TokenNotFound):
            credentials.consume_reset_token(first, "brand-new-pass")
        credentials.consume_reset_token(second, "brand-new-pass")

    def test_unknown_token(self, credentials) -> None:
        with pytest.raises(TokenNotFound):
            credentials.consume_reset_token(str(uuid.uuid4()), "brand-new-pass")

    def test_malformed_token_is_a_validation_error(self, credentials) -> None:
        with pytest.raises(ValidationFailed):
            credentials.consume_reset_token("not-a-uuid", "brand-new-pass")

    def test_short_password_is_rejected_before_consuming(self, credentials, store, seed_account) -> None:
        token = credentials.issue_reset_token(seed_account("r@example.com"))
        with pytest.raises(ValidationFailed):
            credentials.consume_reset_token(token, "short")
        assert store.holds_reset_token(token)

    def test_completed_reset_logs_the_account(self, credentials, caplog, seed_account) -> None:
        token = credentials.issue_reset_token(seed_account("reset-log@example.com"))
        with caplog.at_level(logging.INFO, logger="expressconnect.auth"):
            credentials.consume_reset_token(token, "brand-new-pass")
        messages = [r.getMessage() for r in caplog.records]
        assert "Password reset completed for re***@example.com" in messages


class TestInitiatePasswordReset:
    def test_sends_reset_link(self, credentials, notifier, store, settings, seed_account) -> None:
        seed_account("Reset@Example.com", first_name="Ada", last_name="Lovelace")
        credentials.initiate_password_reset("reset@example.com")

        kind, data = notifier.last_to("reset@example.com")
        assert kind is NotificationKind.RESET_LINK
        token = store.find_by_email("reset@example.com").reset_token
        assert data["reset_url"] == f"{settings.base_url}/auth/reset-password?token={token}"
        assert data["first_name"] == "Ada"
        assert data["last_name"] == "Lovelace"
        assert data["support_email"] == settings.email_support_from

    def test_unknown_email_is_silent(self, credentials, notifier) -> None:
        credentials.initiate_password_reset("ghost@example.com")
        assert notifier.sent == []

    def test_delivery_failure_raises(self, credentials, notifier, seed_account) -> None:
        seed_account("r@example.com")
        notifier.fail = True
        with pytest.raises(NotificationFailed):
            credentials.initiate_password_reset("r@example.com")
