"""
auth/notifier.py -- Out-of-band delivery of password-reset tokens.

The service hands the cleartext reset token to a notifier and forgets it.
Email delivery itself is outside this service; LogNotifier records that a link
was dispatched (never the token) so operators can trace the flow. Deployments
plug in a real sender by implementing send_password_reset().
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.models import User

logger = logging.getLogger("satsang.auth.notifier")


class PasswordResetNotifier(Protocol):
    def send_password_reset(self, user: User, token: str) -> None: ...


class LogNotifier:
    """Logs that a reset link under frontend_url went out, without the token."""

    def __init__(self, frontend_url: str) -> None:
        self.frontend_url = frontend_url.rstrip("/")

    def send_password_reset(self, user: User, token: str) -> None:
        logger.info("Password reset link (%s/reset-password/...) dispatched to user_id=%s", self.frontend_url, user.id)
