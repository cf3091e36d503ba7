"""
auth/service.py -- Auth Service: registration, login, token and password flows.

Composes the leaves explicitly (dependency injection):
  UserStore        -- credential persistence
  PasswordHasher   -- bcrypt
  TokenIssuer      -- access/refresh JWTs
  PasswordResetNotifier -- out-of-band reset delivery

Every operation either completes its identity mutation and token issuance or
raises an AuthError subclass before touching the store. Token issuance has no
side effects, so there is nothing to roll back.

Security:
  [C1] login() always runs bcrypt, even for unknown emails, and returns the
       same InvalidCredentials for unknown email and wrong password.
  Registration never issues tokens: an account must exist *and* be approved
  before it can use gated features, but approval is enforced per-route
  (require_approval), not at login. Logging in proves identity only.

Concurrency: same-identity mutations are not serialized here. Each operation
writes only the columns it owns, so a password change never undoes a
concurrent role or active-flag change. Two concurrent resets for one user race
and the last save wins.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.errors import (
    DuplicateIdentity,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    TokenError,
    Unauthorized,
    UserInactive,
    ValidationError,
)
from auth.models import AuthResult, Role, TokenPair, User
from auth.notifier import PasswordResetNotifier
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import TokenIssuer, TokenKind, generate_reset_token, hash_reset_token, utcnow
from auth.validation import email_error, normalize_email, validate_password, validate_registration

logger = logging.getLogger("satsang.auth")


class AuthService:
    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        notifier: PasswordResetNotifier,
        *,
        reset_expire_seconds: int = 600,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.issuer = issuer
        self.notifier = notifier
        self.reset_expire_seconds = reset_expire_seconds
        self._clock = clock

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        full_name: str,
        spiritual_name: str | None = None,
        phone: str | None = None,
        introduction: str | None = None,
    ) -> int:
        """Create a pending (unapproved) identity and return its id.

        Raises ValidationError on malformed input, DuplicateIdentity if the
        email is taken.
        """
        validate_registration(email, password, full_name, spiritual_name, phone, introduction)
        if self.store.find_by_email(email) is not None:
            raise DuplicateIdentity()

        user = self.store.create(
            User(
                email=email,
                full_name=full_name.strip(),
                password_hash=self.hasher.hash(password),
                spiritual_name=_clean(spiritual_name),
                phone=_clean(phone),
                introduction=introduction,
                is_approved=False,
            )
        )
        logger.info("New user registered: user_id=%s email=%s", user.id, user.email)
        return user.id

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate by email and password and issue a token pair.

        Unknown email and wrong password are indistinguishable to the caller,
        in both error and timing [C1]. Approval is not required here.
        """
        user = self.store.find_by_email(email) if email else None
        if user is None or user.password_hash is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            self.hasher.dummy_verify(password or "")
            raise InvalidCredentials()
        if not self.hasher.verify(password or "", user.password_hash):
            raise InvalidCredentials()
        if not user.is_active:
            raise UserInactive()

        result = self._complete_login(user)
        logger.info("User logged in: user_id=%s", user.id)
        return result

    def oauth_login(
        self,
        google_id: str,
        email: str,
        full_name: str | None = None,
        avatar: str | None = None,
    ) -> AuthResult:
        """Find or create the identity behind a Google account and issue tokens.

        The caller has already verified the Google credential; this method only
        deduplicates identities. Match order: google_id, then email. A matched
        account without a google_id gets it backfilled. A new account starts
        unapproved, email-verified, and without a password.
        """
        errors: dict[str, str] = {}
        if not google_id:
            errors["googleId"] = "Google account id is required"
        if msg := email_error(email):
            errors["email"] = msg
        if errors:
            raise ValidationError(details=errors)

        user = self.store.find_by_google_id(google_id) or self.store.find_by_email(email)
        if user is not None:
            if user.google_id is None:
                user.google_id = google_id
                self.store.save(user, "google_id")
        else:
            user = self.store.create(
                User(
                    email=email,
                    full_name=(full_name or "").strip() or normalize_email(email).split("@")[0],
                    avatar=avatar,
                    google_id=google_id,
                    is_email_verified=True,
                    is_approved=False,
                )
            )
            logger.info("New user created via Google: user_id=%s email=%s", user.id, user.email)

        if not user.is_active:
            raise UserInactive()
        result = self._complete_login(user)
        logger.info("User logged in with Google: user_id=%s", user.id)
        return result

    def _complete_login(self, user: User) -> AuthResult:
        tokens = self.issuer.issue_pair(user)
        self.store.touch_last_active(user.id)
        user.last_active = self._clock().isoformat()
        return AuthResult(user=user, tokens=tokens)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str | None) -> TokenPair:
        """Exchange a refresh token for a fresh pair.

        The previous pair is not revoked -- old access tokens stay valid until
        their own expiry.
        """
        if not refresh_token:
            raise Unauthorized("Refresh token is required", code="REFRESH_TOKEN_REQUIRED")
        try:
            claims = self.issuer.verify(refresh_token, TokenKind.REFRESH)
        except TokenError as exc:
            raise Unauthorized("Invalid or expired refresh token", code="INVALID_REFRESH_TOKEN") from exc

        user = self._load_claimed_user(claims)
        if user is None or not user.is_active:
            raise Unauthorized("User not found or inactive", code="USER_NOT_FOUND")
        return self.issuer.issue_pair(user)

    def authenticate(self, access_token: str | None) -> User:
        """Resolve a bearer access token to an active identity.

        Every failure -- missing, malformed, expired, wrong kind, unknown or
        inactive identity -- is Unauthorized.
        """
        if not access_token:
            raise Unauthorized()
        try:
            claims = self.issuer.verify(access_token, TokenKind.ACCESS)
        except TokenError as exc:
            raise Unauthorized(code=exc.code) from exc

        user = self._load_claimed_user(claims)
        if user is None:
            raise Unauthorized("User not found", code="USER_NOT_FOUND")
        if not user.is_active:
            raise Unauthorized("User account is inactive", code="USER_INACTIVE")
        return user

    def _load_claimed_user(self, claims: dict) -> User | None:
        try:
            user_id = int(claims["sub"])
        except (KeyError, TypeError, ValueError):
            return None
        return self.store.find_by_id(user_id)

    def touch_last_active(self, user_id: int) -> None:
        self.store.touch_last_active(user_id)

    def logout(self, user: User) -> None:
        """Record the logout. Tokens are stateless; the client discards them."""
        logger.info("User logged out: user_id=%s", user.id)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> None:
        """Issue a reset token for email and hand it to the notifier.

        Unknown emails raise NotFound, which tells the caller whether an
        account exists.
        """
        user = self.store.find_by_email(email) if email else None
        if user is None:
            raise NotFound("No user found with this email", code="USER_NOT_FOUND")

        token = generate_reset_token()
        user.reset_password_token = hash_reset_token(token)
        user.reset_password_expire = (self._clock() + timedelta(seconds=self.reset_expire_seconds)).isoformat()
        self.store.save(user, "reset_password_token", "reset_password_expire")
        self.notifier.send_password_reset(user, token)
        logger.info("Password reset requested: user_id=%s", user.id)

    def reset_password(self, token: str, new_password: str) -> AuthResult:
        """Consume a reset token, set the new password, and log the user in.

        The token is single use: change_password() clears it in the same save
        that writes the new hash.
        """
        validate_password(new_password)
        user = self.store.find_by_reset_token(hash_reset_token(token)) if token else None
        if user is None or not self._reset_token_live(user):
            raise InvalidToken()

        self.change_password(user, new_password)
        logger.info("Password reset successful: user_id=%s", user.id)
        return AuthResult(user=user, tokens=self.issuer.issue_pair(user))

    def _reset_token_live(self, user: User) -> bool:
        if not user.reset_password_expire:
            return False
        return datetime.fromisoformat(user.reset_password_expire) > self._clock()

    def change_password(self, user: User, new_password: str) -> None:
        """Hash new_password and persist it, clearing any pending reset token.

        This is the only place a password hash is written after registration.
        """
        validate_password(new_password)
        user.password_hash = self.hasher.hash(new_password)
        user.reset_password_token = None
        user.reset_password_expire = None
        self.store.save(user, "password_hash", "reset_password_token", "reset_password_expire")

    def update_password(self, user: User, current_password: str, new_password: str) -> None:
        """Change the password of a signed-in user after re-checking the current one."""
        if not self.hasher.verify(current_password or "", user.password_hash):
            raise InvalidCredentials("Current password is incorrect")
        self.change_password(user, new_password)
        logger.info("Password changed: user_id=%s", user.id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> User:
        user = self.store.find_by_id(user_id)
        if user is None:
            raise NotFound("User not found", code="USER_NOT_FOUND")
        return user

    def list_users(self, approved: bool | None = None) -> list[User]:
        return self.store.list_users(approved=approved)

    def get_stats(self) -> dict[str, int]:
        return self.store.get_stats()

    def approve_user(self, user_id: int) -> User:
        """Move an identity from pending to approved. Approving twice is a no-op."""
        user = self.get_user(user_id)
        if not user.is_approved:
            user.is_approved = True
            self.store.save(user, "is_approved")
            logger.info("User approved: user_id=%s", user.id)
        return user

    def update_user(
        self,
        actor: User,
        user_id: int,
        role: Role | None = None,
        is_active: bool | None = None,
    ) -> User:
        """Change a user's role and/or active flag.

        Prevents:
          - Self-deactivation (an admin locking themselves out).
          - Deactivating or demoting the last active admin.
        """
        target = self.get_user(user_id)
        if role is None and is_active is None:
            raise ValidationError("No fields to update", code="NO_CHANGES")

        if is_active is False and target.id == actor.id:
            raise ValidationError("You cannot deactivate your own account", code="SELF_DEACTIVATION")
        loses_admin = target.role is Role.ADMIN and (is_active is False or (role is not None and role is not Role.ADMIN))
        if loses_admin and target.is_active and self.store.count_active_admins() <= 1:
            raise ValidationError("Cannot remove the last active admin account", code="LAST_ADMIN")

        changed: list[str] = []
        if role is not None:
            target.role = role
            changed.append("role")
        if is_active is not None:
            target.is_active = is_active
            changed.append("is_active")
        self.store.save(target, *changed)
        logger.info(
            "User updated by user_id=%s: user_id=%s role=%s is_active=%s",
            actor.id,
            target.id,
            target.role.value,
            target.is_active,
        )
        return target

    def ensure_admin(self, email: str, password: str, full_name: str = "Administrator") -> User:
        """Make sure an approved, active admin with this email exists.

        Creates the account if the email is unknown; otherwise promotes and
        approves the existing identity without touching its password.
        """
        user = self.store.find_by_email(email)
        if user is None:
            validate_registration(email, password, full_name)
            user = self.store.create(
                User(
                    email=email,
                    full_name=full_name,
                    password_hash=self.hasher.hash(password),
                    role=Role.ADMIN,
                    is_approved=True,
                    is_email_verified=True,
                )
            )
            logger.info("Bootstrap admin created: user_id=%s", user.id)
            return user

        if user.role is not Role.ADMIN or not user.is_approved or not user.is_active:
            user.role = Role.ADMIN
            user.is_approved = True
            user.is_active = True
            self.store.save(user, "role", "is_approved", "is_active")
            logger.info("Existing user promoted to admin: user_id=%s", user.id)
        return user


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None
