# civicsync/services/profile_ledger.py
"""
Points / report-count / badge aggregate for the signed-in identity.

Counters move only through atomic increments so two devices of the same
identity converge. Badges are recomputed from the post-increment count and
written wholesale alongside the increment; that recompute is not atomic with
it, so two simultaneous reports from different sessions can each compute
from the same stale count. The badge floor still converges on the next report.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from civicsync.core.errors import RemoteReadError, RemoteWriteError
from civicsync.models.profile import (
    POINTS_PER_REPORT,
    Identity,
    ProfileAggregate,
    merge_badges,
)

log = logging.getLogger(__name__)


class ProfileLedger:
    def __init__(self, store, profiles_path: str):
        self._store = store
        self._path = profiles_path
        self._lock = threading.RLock()
        self._current = ProfileAggregate.zero()

    @property
    def current(self) -> ProfileAggregate:
        with self._lock:
            return self._current.model_copy(deep=True)

    def reset(self) -> None:
        with self._lock:
            self._current = ProfileAggregate.zero()

    def load_or_init(self, identity: Identity) -> ProfileAggregate:
        """Read the aggregate; a missing one is persisted with the zero state before returning."""
        try:
            data = self._store.get(self._path, identity.uid)
        except RemoteReadError:
            log.exception("profile read failed for %s", identity.uid)
            raise

        if data is None:
            profile = ProfileAggregate.zero(identity)
            try:
                self._store.set(self._path, identity.uid, profile.to_document())
            except RemoteWriteError:
                log.exception("profile init failed for %s", identity.uid)
                raise
            log.info("created profile for %s", identity.uid)
        else:
            profile = ProfileAggregate.from_document(identity.uid, data)

        with self._lock:
            self._current = profile
        return profile.model_copy(deep=True)

    def apply_report_accepted(self, identity: Identity, current: Optional[ProfileAggregate] = None) -> ProfileAggregate:
        with self._lock:
            base = current if current is not None else self._current
        if base.uid != identity.uid:
            # never loaded for this identity: a zero base would overwrite held badges
            try:
                base = self.load_or_init(identity)
            except (RemoteReadError, RemoteWriteError) as exc:
                raise RemoteWriteError(f"profile for {identity.uid} unavailable: {exc}") from exc

        new_count = base.reported_issues + 1
        badges = merge_badges(base.badges, new_count)

        self._store.increment(
            self._path,
            identity.uid,
            {"points": POINTS_PER_REPORT, "reportedIssues": 1},
            extra={"badges": badges},
            create=True,
        )

        with self._lock:
            if self._current.uid == identity.uid:
                self._current = self._current.model_copy(update={
                    "points": self._current.points + POINTS_PER_REPORT,
                    "reported_issues": self._current.reported_issues + 1,
                    "badges": merge_badges(badges, self._current.reported_issues + 1),
                })
            return self._current.model_copy(deep=True)

    def apply_report_deleted(self, identity: Identity) -> ProfileAggregate:
        # Badges are a floor: a deletion never revokes one.
        self._store.increment(
            self._path,
            identity.uid,
            {"points": -POINTS_PER_REPORT, "reportedIssues": -1},
        )
        with self._lock:
            if self._current.uid == identity.uid:
                self._current = self._current.model_copy(update={
                    "points": self._current.points - POINTS_PER_REPORT,
                    "reported_issues": self._current.reported_issues - 1,
                })
            return self._current.model_copy(deep=True)


def backfill_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Fields a stored profile is missing, plus badges its report count implies."""
    upd: Dict[str, Any] = {}
    if "points" not in data:
        upd["points"] = 0
    if "reportedIssues" not in data:
        upd["reportedIssues"] = 0
    if "name" not in data:
        upd["name"] = ProfileAggregate.zero().display_name

    held = list(data.get("badges") or [])
    merged = merge_badges(held, int(data.get("reportedIssues") or 0))
    if "badges" not in data or merged != held:
        upd["badges"] = merged
    return upd
