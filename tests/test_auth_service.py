"""
tests/test_auth_service.py -- Unit tests for auth/service.py (AuthService).

Exercises the service directly with an in-memory store, a low-cost hasher, a
recording notifier and a frozen clock. HTTP concerns are covered separately in
test_api_*.py.

Coverage:
  - register: pending identity, no tokens, duplicate email, field validation
  - login: token pair; unknown email == wrong password; inactive; unapproved allowed
  - oauth_login: create, reuse by google_id, link by email, inactive
  - refresh / authenticate: the Unauthorized code for each failure mode
  - forgot/reset password: single use, 10-minute window, validation first
  - administration: approve, update_user guards, ensure_admin
"""

from __future__ import annotations

import pytest

from auth.errors import (
    DuplicateIdentity,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    Unauthorized,
    UserInactive,
    ValidationError,
)
from auth.models import Role
from auth.service import AuthService
from auth.tokens import TokenIssuer, TokenKind, hash_reset_token

PASSWORD = "Passw0rd"


@pytest.fixture
def seeker_id(service: AuthService) -> int:
    return service.register("seeker@satsang.test", PASSWORD, "Seeker")


# ---------------------------------------------------------------------------
# Registration and login
# ---------------------------------------------------------------------------


class TestRegister:
    def test_creates_pending_learner(self, service: AuthService, seeker_id: int) -> None:
        user = service.get_user(seeker_id)
        assert user.email == "seeker@satsang.test"
        assert user.role is Role.LEARNER
        assert user.is_approved is False
        assert user.password_hash != PASSWORD
        assert service.hasher.verify(PASSWORD, user.password_hash)

    def test_duplicate_email_any_case(self, service: AuthService, seeker_id: int) -> None:
        with pytest.raises(DuplicateIdentity) as exc_info:
            service.register("SEEKER@satsang.test", PASSWORD, "Someone Else")
        assert exc_info.value.code == "USER_EXISTS"

    def test_invalid_fields_create_nothing(self, service: AuthService) -> None:
        with pytest.raises(ValidationError) as exc_info:
            service.register("not-an-email", "weak", "S")
        assert set(exc_info.value.details) == {"email", "password", "fullName"}
        assert service.list_users() == []

    def test_optional_profile_fields(self, service: AuthService) -> None:
        user_id = service.register(
            "arjuna@satsang.test", PASSWORD, "  Arjun Kumar ", spiritual_name=" Arjuna ", phone="", introduction="Hi"
        )
        user = service.get_user(user_id)
        assert user.full_name == "Arjun Kumar"
        assert user.spiritual_name == "Arjuna"
        assert user.phone is None
        assert user.introduction == "Hi"


class TestLogin:
    def test_returns_verifiable_pair(self, service: AuthService, issuer: TokenIssuer, seeker_id: int) -> None:
        result = service.login("Seeker@Satsang.test", PASSWORD)
        assert result.user.id == seeker_id
        assert issuer.verify(result.tokens.access_token, TokenKind.ACCESS)["sub"] == str(seeker_id)
        assert issuer.verify(result.tokens.refresh_token, TokenKind.REFRESH)["sub"] == str(seeker_id)

    def test_unapproved_user_may_log_in(self, service: AuthService, seeker_id: int) -> None:
        assert service.login("seeker@satsang.test", PASSWORD).user.is_approved is False

    def test_unknown_email_and_wrong_password_are_indistinguishable(
        self, service: AuthService, seeker_id: int
    ) -> None:
        with pytest.raises(InvalidCredentials) as unknown:
            service.login("nobody@satsang.test", PASSWORD)
        with pytest.raises(InvalidCredentials) as wrong:
            service.login("seeker@satsang.test", "Wrong1234")
        assert unknown.value.code == wrong.value.code == "INVALID_CREDENTIALS"
        assert unknown.value.message == wrong.value.message
        assert unknown.value.status_code == wrong.value.status_code == 401

    def test_google_only_user_cannot_password_login(self, service: AuthService) -> None:
        service.oauth_login("g-1", "google@satsang.test", "Google User")
        with pytest.raises(InvalidCredentials):
            service.login("google@satsang.test", "")

    def test_inactive_user_rejected(self, service: AuthService, seeker_id: int) -> None:
        user = service.get_user(seeker_id)
        user.is_active = False
        service.store.save(user, "is_active")
        with pytest.raises(UserInactive):
            service.login("seeker@satsang.test", PASSWORD)

    def test_records_last_active(self, service: AuthService, seeker_id: int) -> None:
        before = service.get_user(seeker_id).last_active
        service.login("seeker@satsang.test", PASSWORD)
        assert service.get_user(seeker_id).last_active >= before


class TestOAuthLogin:
    def test_creates_pending_verified_identity(self, service: AuthService) -> None:
        result = service.oauth_login("g-1", "Devotee@Satsang.test", "Devotee", "https://img/avatar.png")
        user = service.get_user(result.user.id)
        assert user.email == "devotee@satsang.test"
        assert user.google_id == "g-1"
        assert user.password_hash is None
        assert user.is_email_verified is True
        assert user.is_approved is False
        assert user.avatar == "https://img/avatar.png"

    def test_missing_name_falls_back_to_mailbox(self, service: AuthService) -> None:
        result = service.oauth_login("g-2", "radha@satsang.test")
        assert result.user.full_name == "radha"

    def test_second_login_reuses_identity(self, service: AuthService) -> None:
        first = service.oauth_login("g-1", "devotee@satsang.test", "Devotee")
        second = service.oauth_login("g-1", "devotee@satsang.test", "Devotee")
        assert first.user.id == second.user.id
        assert len(service.list_users()) == 1

    def test_links_existing_password_account_by_email(self, service: AuthService, seeker_id: int) -> None:
        result = service.oauth_login("g-7", "seeker@satsang.test", "Seeker")
        assert result.user.id == seeker_id
        user = service.get_user(seeker_id)
        assert user.google_id == "g-7"
        assert service.hasher.verify(PASSWORD, user.password_hash)

    def test_requires_google_id_and_email(self, service: AuthService) -> None:
        with pytest.raises(ValidationError) as exc_info:
            service.oauth_login("", "bad")
        assert set(exc_info.value.details) == {"googleId", "email"}

    def test_inactive_identity_rejected(self, service: AuthService) -> None:
        result = service.oauth_login("g-1", "devotee@satsang.test")
        result.user.is_active = False
        service.store.save(result.user, "is_active")
        with pytest.raises(UserInactive):
            service.oauth_login("g-1", "devotee@satsang.test")


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestRefresh:
    def test_issues_new_pair_for_same_identity(
        self, service: AuthService, issuer: TokenIssuer, seeker_id: int
    ) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        fresh = service.refresh(pair.refresh_token)
        assert issuer.verify(fresh.access_token, TokenKind.ACCESS)["sub"] == str(seeker_id)

    def test_prior_pair_not_revoked(self, service: AuthService, clock, seeker_id: int) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        clock.advance(60)
        service.refresh(pair.refresh_token)
        service.refresh(pair.refresh_token)
        assert service.authenticate(pair.access_token).id == seeker_id

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, service: AuthService, token) -> None:
        with pytest.raises(Unauthorized) as exc_info:
            service.refresh(token)
        assert exc_info.value.code == "REFRESH_TOKEN_REQUIRED"

    def test_access_token_is_not_a_refresh_token(self, service: AuthService, seeker_id: int) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        with pytest.raises(Unauthorized) as exc_info:
            service.refresh(pair.access_token)
        assert exc_info.value.code == "INVALID_REFRESH_TOKEN"

    def test_expired_refresh_token(self, service: AuthService, clock, seeker_id: int) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        clock.advance(7 * 24 * 3600 + 1)
        with pytest.raises(Unauthorized) as exc_info:
            service.refresh(pair.refresh_token)
        assert exc_info.value.code == "INVALID_REFRESH_TOKEN"

    def test_deactivated_user_cannot_refresh(self, service: AuthService, seeker_id: int) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        user = service.get_user(seeker_id)
        user.is_active = False
        service.store.save(user, "is_active")
        with pytest.raises(Unauthorized) as exc_info:
            service.refresh(pair.refresh_token)
        assert exc_info.value.code == "USER_NOT_FOUND"


class TestAuthenticate:
    def test_resolves_access_token(self, service: AuthService, seeker_id: int) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        assert service.authenticate(pair.access_token).id == seeker_id

    def test_refresh_token_refused(self, service: AuthService, seeker_id: int) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        with pytest.raises(Unauthorized) as exc_info:
            service.authenticate(pair.refresh_token)
        assert exc_info.value.code == "TOKEN_KIND_MISMATCH"

    def test_expired_access_token(self, service: AuthService, clock, seeker_id: int) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        clock.advance(3601)
        with pytest.raises(Unauthorized) as exc_info:
            service.authenticate(pair.access_token)
        assert exc_info.value.code == "TOKEN_EXPIRED"

    def test_missing_token(self, service: AuthService) -> None:
        with pytest.raises(Unauthorized) as exc_info:
            service.authenticate(None)
        assert exc_info.value.code == "UNAUTHORIZED"

    def test_deactivated_user(self, service: AuthService, seeker_id: int) -> None:
        pair = service.login("seeker@satsang.test", PASSWORD).tokens
        user = service.get_user(seeker_id)
        user.is_active = False
        service.store.save(user, "is_active")
        with pytest.raises(Unauthorized) as exc_info:
            service.authenticate(pair.access_token)
        assert exc_info.value.code == "USER_INACTIVE"


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


class TestPasswordReset:
    def test_forgot_stores_only_the_hash(self, service: AuthService, notifier, seeker_id: int) -> None:
        service.forgot_password("Seeker@satsang.test")
        token = notifier.last_token
        user = service.get_user(seeker_id)
        assert user.reset_password_token == hash_reset_token(token)
        assert user.reset_password_token != token

    def test_forgot_unknown_email(self, service: AuthService) -> None:
        with pytest.raises(NotFound) as exc_info:
            service.forgot_password("nobody@satsang.test")
        assert exc_info.value.code == "USER_NOT_FOUND"

    def test_reset_changes_password_and_logs_in(self, service: AuthService, notifier, seeker_id: int) -> None:
        service.forgot_password("seeker@satsang.test")
        result = service.reset_password(notifier.last_token, "NewPassw0rd")
        assert result.user.id == seeker_id
        assert result.tokens.access_token
        service.login("seeker@satsang.test", "NewPassw0rd")
        with pytest.raises(InvalidCredentials):
            service.login("seeker@satsang.test", PASSWORD)

    def test_reset_token_single_use(self, service: AuthService, notifier, seeker_id: int) -> None:
        service.forgot_password("seeker@satsang.test")
        token = notifier.last_token
        service.reset_password(token, "NewPassw0rd")
        with pytest.raises(InvalidToken):
            service.reset_password(token, "Another1Pass")
        user = service.get_user(seeker_id)
        assert user.reset_password_token is None
        assert user.reset_password_expire is None

    def test_reset_token_window(self, service: AuthService, notifier, clock, seeker_id: int) -> None:
        service.forgot_password("seeker@satsang.test")
        clock.advance(599)
        service.reset_password(notifier.last_token, "NewPassw0rd")

        service.forgot_password("seeker@satsang.test")
        clock.advance(600)
        with pytest.raises(InvalidToken):
            service.reset_password(notifier.last_token, "Later1Pass")

    def test_new_request_supersedes_old_token(self, service: AuthService, notifier, seeker_id: int) -> None:
        service.forgot_password("seeker@satsang.test")
        old = notifier.last_token
        service.forgot_password("seeker@satsang.test")
        with pytest.raises(InvalidToken):
            service.reset_password(old, "NewPassw0rd")
        service.reset_password(notifier.last_token, "NewPassw0rd")

    def test_weak_password_rejected_before_token_lookup(
        self, service: AuthService, notifier, seeker_id: int
    ) -> None:
        service.forgot_password("seeker@satsang.test")
        with pytest.raises(ValidationError):
            service.reset_password(notifier.last_token, "weak")
        # token survives a rejected attempt
        service.reset_password(notifier.last_token, "NewPassw0rd")

    def test_unknown_token(self, service: AuthService) -> None:
        with pytest.raises(InvalidToken) as exc_info:
            service.reset_password("0" * 40, "NewPassw0rd")
        assert exc_info.value.code == "INVALID_TOKEN"


class TestUpdatePassword:
    def test_requires_current_password(self, service: AuthService, seeker_id: int) -> None:
        user = service.get_user(seeker_id)
        with pytest.raises(InvalidCredentials):
            service.update_password(user, "Wrong1234", "NewPassw0rd")
        service.update_password(user, PASSWORD, "NewPassw0rd")
        service.login("seeker@satsang.test", "NewPassw0rd")

    def test_clears_pending_reset_token(self, service: AuthService, notifier, seeker_id: int) -> None:
        service.forgot_password("seeker@satsang.test")
        token = notifier.last_token
        service.update_password(service.get_user(seeker_id), PASSWORD, "NewPassw0rd")
        with pytest.raises(InvalidToken):
            service.reset_password(token, "Other1Pass")

    def test_keeps_concurrent_admin_changes(self, service: AuthService, seeker_id: int) -> None:
        """A password change from a copy loaded before a deactivation must not revive the account."""
        admin = service.ensure_admin("admin@satsang.test", "AdminPass1")
        stale = service.get_user(seeker_id)
        service.update_user(admin, seeker_id, role=Role.TEACHER, is_active=False)

        service.update_password(stale, PASSWORD, "NewPassw0rd")

        stored = service.get_user(seeker_id)
        assert stored.is_active is False
        assert stored.role is Role.TEACHER
        assert service.hasher.verify("NewPassw0rd", stored.password_hash)

    def test_forgot_password_keeps_concurrent_approval(self, service: AuthService, seeker_id: int) -> None:
        stale = service.get_user(seeker_id)
        service.approve_user(seeker_id)
        service.store.save(stale, "reset_password_token", "reset_password_expire")
        assert service.get_user(seeker_id).is_approved is True


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


class TestAdministration:
    def test_approve_is_idempotent(self, service: AuthService, seeker_id: int) -> None:
        assert service.approve_user(seeker_id).is_approved is True
        assert service.approve_user(seeker_id).is_approved is True
        assert service.list_users(approved=False) == []

    def test_approve_unknown_user(self, service: AuthService) -> None:
        with pytest.raises(NotFound):
            service.approve_user(999)

    def test_update_role(self, service: AuthService, seeker_id: int) -> None:
        admin = service.ensure_admin("admin@satsang.test", "AdminPass1")
        assert service.update_user(admin, seeker_id, role=Role.TEACHER).role is Role.TEACHER
        assert service.get_user(seeker_id).role is Role.TEACHER

    def test_update_requires_a_change(self, service: AuthService, seeker_id: int) -> None:
        admin = service.ensure_admin("admin@satsang.test", "AdminPass1")
        with pytest.raises(ValidationError) as exc_info:
            service.update_user(admin, seeker_id)
        assert exc_info.value.code == "NO_CHANGES"

    def test_cannot_deactivate_self(self, service: AuthService) -> None:
        admin = service.ensure_admin("admin@satsang.test", "AdminPass1")
        service.ensure_admin("second@satsang.test", "AdminPass2")
        with pytest.raises(ValidationError) as exc_info:
            service.update_user(admin, admin.id, is_active=False)
        assert exc_info.value.code == "SELF_DEACTIVATION"

    def test_cannot_demote_last_admin(self, service: AuthService, seeker_id: int) -> None:
        admin = service.ensure_admin("admin@satsang.test", "AdminPass1")
        with pytest.raises(ValidationError) as exc_info:
            service.update_user(admin, admin.id, role=Role.LEARNER)
        assert exc_info.value.code == "LAST_ADMIN"

    def test_can_demote_admin_when_another_remains(self, service: AuthService) -> None:
        admin = service.ensure_admin("admin@satsang.test", "AdminPass1")
        other = service.ensure_admin("second@satsang.test", "AdminPass2")
        assert service.update_user(admin, other.id, role=Role.TEACHER).role is Role.TEACHER

    def test_ensure_admin_creates_approved_admin(self, service: AuthService) -> None:
        admin = service.ensure_admin("admin@satsang.test", "AdminPass1", "Root")
        assert admin.role is Role.ADMIN
        assert admin.is_approved is True
        assert service.login("admin@satsang.test", "AdminPass1").user.id == admin.id

    def test_ensure_admin_promotes_without_touching_password(self, service: AuthService, seeker_id: int) -> None:
        promoted = service.ensure_admin("seeker@satsang.test", "IgnoredPass1")
        assert promoted.id == seeker_id
        assert promoted.role is Role.ADMIN
        assert promoted.is_approved is True
        service.login("seeker@satsang.test", PASSWORD)

    def test_get_stats(self, service: AuthService, seeker_id: int) -> None:
        service.ensure_admin("admin@satsang.test", "AdminPass1")
        stats = service.get_stats()
        assert stats["total_users"] == 2
        assert stats["pending_users"] == 1
        assert stats["admins"] == 1
        assert stats["learners"] == 1
