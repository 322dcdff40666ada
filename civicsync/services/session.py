# civicsync/services/session.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from civicsync.core.errors import AuthError, CivicSyncError
from civicsync.core.subscription import Listeners, Subscription
from civicsync.models.profile import Identity

log = logging.getLogger(__name__)


class SessionContext:
    """
    Holds the current identity for one browser session and notifies listeners
    when it changes. Components receive this object at construction instead of
    reading a module-level "current user".
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._identity: Optional[Identity] = None
        self._listeners: Listeners[Optional[Identity]] = Listeners()

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def authenticated(self) -> bool:
        return self._identity is not None

    def require_identity(self) -> Identity:
        identity = self._identity
        if identity is None:
            raise AuthError("You must be signed in.")
        return identity

    def on_change(self, callback: Callable[[Optional[Identity]], None]) -> Subscription:
        return self._listeners.add(callback)

    def set_identity(self, identity: Optional[Identity]) -> None:
        with self._lock:
            self._identity = identity
        self._listeners.emit(identity)


class SessionManager:
    """
    Entry paths (login, signup, guest) and sign-out. Identity changes drive the
    profile ledger and the issue feed: authenticated -> load profile, start
    feed; unauthenticated -> stop feed, reset profile.
    """

    def __init__(self, context: SessionContext, auth, ledger, feed, initial_auth_token: str | None = None):
        self.context = context
        self._auth = auth
        self._ledger = ledger
        self._feed = feed
        self._initial_auth_token = initial_auth_token
        self._identity_sub = context.on_change(self._on_identity_change)

    # ───────────────────────── entry paths ─────────────────────────
    def login(self, email: str, password: str) -> Identity:
        identity = self._auth.sign_in_with_password(email.strip(), password)
        self.context.set_identity(identity)
        return identity

    def signup(self, email: str, password: str) -> Identity:
        identity = self._auth.sign_up(email.strip(), password)
        self.context.set_identity(identity)
        return identity

    def guest(self) -> Identity:
        try:
            if self._initial_auth_token:
                identity = self._auth.sign_in_with_custom_token(self._initial_auth_token)
            else:
                identity = self._auth.sign_in_anonymously()
        except AuthError as exc:
            log.error("Error signing in as guest: %s", exc)
            raise AuthError("Guest authentication failed.") from exc
        self.context.set_identity(identity)
        return identity

    def logout(self) -> None:
        identity = self.context.identity
        try:
            if identity is not None:
                self._auth.sign_out(identity)
        except AuthError as exc:
            log.warning("sign-out for %s failed remotely: %s", identity.uid, exc)
        finally:
            self.context.set_identity(None)

    def close(self) -> None:
        self.logout()
        self._identity_sub.cancel()

    # ───────────────────────── transitions ─────────────────────────
    def _on_identity_change(self, identity: Optional[Identity]) -> None:
        if identity is None:
            self._feed.stop()
            self._ledger.reset()
            return

        try:
            self._ledger.load_or_init(identity)
        except CivicSyncError as exc:
            log.error("profile load for %s failed: %s", identity.uid, exc)
        self._feed.start()
