# civicsync/services/issue_feed.py
"""
Live, sorted view of every issue report plus the three mutations on it.

Optimism policy
---------------
submit  pessimistic; the next snapshot shows the new report. Issue write and
        point award are two separate writes: if the award fails the report
        stays and the caller is told the submission failed.
upvote  pessimistic; atomic +1 on the stored counter, failures only logged.
delete  optimistic; removed from the view first, restored on remote failure.
        The point reversal runs only after the delete succeeded and is not
        rolled back if it fails.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import ValidationError as ModelValidationError

from civicsync.core.errors import (
    IssueNotFoundError,
    NotOwnerError,
    RemoteReadError,
    RemoteWriteError,
    SubmissionInProgressError,
    ValidationError,
)
from civicsync.core.subscription import Listeners, Subscription
from civicsync.models.issue import IssueDraft, IssueRecord, IssueStatus, sort_issues
from civicsync.models.profile import Identity

log = logging.getLogger(__name__)

FEED_LOAD_FAILED = "Failed to load civic issues."
SUBMIT_FAILED = "Failed to submit issue."
DELETE_FAILED = "Failed to delete the report. Please refresh and try again."
EMPTY_FEED = "No issues yet"

View = List[IssueRecord]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IssueFeedSynchronizer:
    def __init__(self, store, issues_path: str, ledger, context, clock: Callable[[], datetime] = _utcnow):
        self._store = store
        self._path = issues_path
        self._ledger = ledger
        self._context = context
        self._clock = clock

        # one lock guards the view and serialises publication, so listeners
        # observe views in the order they were produced
        self._lock = threading.RLock()
        self._view: View = []
        self._received = False
        self._active = False
        self._watch: Optional[Subscription] = None
        self._listeners: Listeners[View] = Listeners()
        self._submit_gate = threading.Lock()
        self.load_error: Optional[str] = None

    # ───────────────────────── state ─────────────────────────
    @property
    def view(self) -> View:
        with self._lock:
            return list(self._view)

    @property
    def active(self) -> bool:
        return self._active

    @property
    def is_submitting(self) -> bool:
        return self._submit_gate.locked()

    def subscribe(self, callback: Callable[[View], None]) -> Subscription:
        """Register for every published view; the latest one is delivered right away."""
        with self._lock:
            sub = self._listeners.add(callback)
            if self._received:
                callback(list(self._view))
        return sub

    def _publish(self, view: View) -> None:
        with self._lock:
            self._view = view
            self._listeners.emit(list(view))

    # ───────────────────────── live sync ─────────────────────
    def start(self) -> None:
        """Open the collection watch; a second call while active is a no-op."""
        with self._lock:
            if self._active:
                return
            self._active = True
            try:
                self._watch = self._store.watch(self._path, self._on_snapshot, self._on_watch_error)
            except RemoteReadError as exc:
                log.error("Error fetching issues: %s", exc)
                self._active = False
                self.load_error = FEED_LOAD_FAILED

    def stop(self) -> None:
        with self._lock:
            watch, self._watch = self._watch, None
            self._active = False
            self._received = False
            self.load_error = None
            self._publish([])
        if watch is not None:
            watch.cancel()

    def _on_snapshot(self, docs) -> None:
        records = []
        for doc_id, data in docs:
            try:
                records.append(IssueRecord.from_document(doc_id, data))
            except (ModelValidationError, TypeError, ValueError) as exc:
                log.warning("skipping malformed issue %s: %s", doc_id, exc)
        view = sort_issues(records)
        with self._lock:
            if not self._active:
                return
            self._received = True
            self.load_error = None
            self._publish(view)

    def _on_watch_error(self, exc: Exception) -> None:
        log.error("Error fetching issues: %s", exc)
        with self._lock:
            self.load_error = FEED_LOAD_FAILED

    # ───────────────────────── mutations ─────────────────────
    def submit(self, draft: IssueDraft, identity: Identity) -> str:
        if draft.missing_fields():
            raise ValidationError("All fields are required.")

        if not self._submit_gate.acquire(blocking=False):
            raise SubmissionInProgressError("A report is already being submitted.")
        try:
            payload = {
                "title": draft.title.strip(),
                "description": draft.description.strip(),
                "location": draft.location.strip(),
                "coordinates": draft.coordinates.model_dump() if draft.coordinates else None,
                "media": draft.media.model_dump(mode="json"),
                "status": IssueStatus.ACKNOWLEDGED.value,
                "upvotes": 0,
                "createdAt": self._clock(),
                "reporterId": identity.uid,
            }
            try:
                issue_id = self._store.add(self._path, payload)
            except RemoteWriteError as exc:
                log.error("Error adding issue for %s: %s", identity.uid, exc)
                raise RemoteWriteError(SUBMIT_FAILED) from exc

            try:
                self._ledger.apply_report_accepted(identity, self._ledger.current)
            except RemoteWriteError as exc:
                log.error("issue %s saved but points for %s not awarded: %s", issue_id, identity.uid, exc)
                raise RemoteWriteError(SUBMIT_FAILED) from exc

            log.info("issue %s submitted by %s", issue_id, identity.uid)
            return issue_id
        finally:
            self._submit_gate.release()

    def upvote(self, issue_id: str) -> bool:
        if not self._context.authenticated:
            return False
        try:
            self._store.increment(self._path, issue_id, {"upvotes": 1})
        except RemoteWriteError as exc:
            log.warning("Error upvoting issue %s: %s", issue_id, exc)
            return False
        return True

    def delete(self, issue_id: str, identity: Identity) -> None:
        with self._lock:
            before = list(self._view)
            target = next((r for r in before if r.id == issue_id), None)
            if target is None:
                raise IssueNotFoundError("That report no longer exists.")
            if target.reporter_id != identity.uid:
                raise NotOwnerError("Only the reporter can delete this report.")
            self._publish([r for r in before if r.id != issue_id])

        try:
            self._store.delete(self._path, issue_id)
        except RemoteWriteError as exc:
            log.error("Error deleting issue %s: %s", issue_id, exc)
            with self._lock:
                self._publish(before)
            raise RemoteWriteError(DELETE_FAILED) from exc

        try:
            self._ledger.apply_report_deleted(identity)
        except RemoteWriteError as exc:
            log.error("issue %s deleted but points for %s not reversed: %s", issue_id, identity.uid, exc)
