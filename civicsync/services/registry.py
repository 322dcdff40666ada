# civicsync/services/registry.py
"""
One `ClientSession` per signed-in browser: its own session context, profile
ledger, issue feed and session manager, all sharing the process-wide store
and auth client.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, Optional

from civicsync.core.config import Settings
from civicsync.services.issue_feed import IssueFeedSynchronizer
from civicsync.services.profile_ledger import ProfileLedger
from civicsync.services.session import SessionContext, SessionManager

log = logging.getLogger(__name__)


@dataclass
class ClientSession:
    sid: str
    context: SessionContext
    ledger: ProfileLedger
    feed: IssueFeedSynchronizer
    manager: SessionManager
    expires_at: float = 0.0


def build_session(store, auth, settings: Settings, sid: Optional[str] = None) -> ClientSession:
    context = SessionContext()
    ledger = ProfileLedger(store, settings.profiles_path)
    feed = IssueFeedSynchronizer(store, settings.issues_path, ledger, context)
    manager = SessionManager(context, auth, ledger, feed, settings.initial_auth_token)
    return ClientSession(
        sid=sid or f"sess_{uuid.uuid4().hex[:12]}",
        context=context,
        ledger=ledger,
        feed=feed,
        manager=manager,
    )


class SessionRegistry:
    """
    Sessions live as long as the app token issued for them. Expired ones are
    closed (feed watch included) on lookup and whenever a new one registers.
    """

    def __init__(self, store, auth, settings: Settings, clock: Callable[[], float] = time.time):
        self._store = store
        self._auth = auth
        self._settings = settings
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, ClientSession] = {}

    def create(self) -> ClientSession:
        return build_session(self._store, self._auth, self._settings)

    def register(self, session: ClientSession) -> None:
        now = self._clock()
        session.expires_at = now + self._settings.access_ttl_h * 3600
        with self._lock:
            self._sessions[session.sid] = session
        self.sweep(now)

    def get(self, sid: str) -> Optional[ClientSession]:
        with self._lock:
            session = self._sessions.get(sid)
        if session is not None and session.expires_at <= self._clock():
            self.discard(sid)
            return None
        return session

    def sweep(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if s.expires_at <= now]
        for sid in stale:
            self.discard(sid)
        return len(stale)

    def discard(self, sid: str) -> None:
        with self._lock:
            session = self._sessions.pop(sid, None)
        if session is not None:
            session.manager.close()
            log.info("closed session %s", sid)

    def close_all(self) -> None:
        with self._lock:
            sids = list(self._sessions)
        for sid in sids:
            self.discard(sid)


@lru_cache(maxsize=1)
def get_registry() -> SessionRegistry:
    from civicsync.core.config import settings
    from civicsync.services.gcp_clients import get_firestore_client, get_http_session
    from civicsync.services.identity_toolkit import IdentityToolkitClient
    from civicsync.services.store import FirestoreStore

    store = FirestoreStore(get_firestore_client())
    auth = IdentityToolkitClient(
        settings.firebase_api_key,
        settings.identity_toolkit_url,
        get_http_session(),
        timeout=settings.http_timeout_s,
    )
    return SessionRegistry(store, auth, settings)
