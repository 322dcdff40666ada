# civicsync/services/store.py
"""
Remote store client backed by Cloud Firestore (Native mode).

Collections are addressed by slash-separated paths, e.g.
``artifacts/{app_id}/public/data/issues``. Every Firestore failure is turned
into `RemoteReadError` / `RemoteWriteError` here so callers never see
google-api-core exceptions; the coordinator decides what the user is told.

Numeric counters are only ever changed through `firestore.Increment`, so
concurrent writers converge without a transaction.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from google.api_core.exceptions import GoogleAPIError  # type: ignore
from google.cloud import firestore  # type: ignore

from civicsync.core.errors import RemoteReadError, RemoteWriteError
from civicsync.core.subscription import Subscription

log = logging.getLogger(__name__)

Document = Tuple[str, Dict[str, Any]]


class FirestoreStore:
    def __init__(self, client: firestore.Client):
        self._fs = client

    def _col(self, collection: str):
        return self._fs.collection(collection)

    # ───────────────────────── reads ─────────────────────────
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            snap = self._col(collection).document(doc_id).get()
        except GoogleAPIError as exc:
            raise RemoteReadError(f"read {collection}/{doc_id} failed: {exc}") from exc
        return (snap.to_dict() or {}) if snap.exists else None

    def exists(self, collection: str, doc_id: str) -> bool:
        try:
            return self._col(collection).document(doc_id).get(field_paths=[]).exists
        except GoogleAPIError as exc:
            raise RemoteReadError(f"exists {collection}/{doc_id} failed: {exc}") from exc

    def stream(self, collection: str) -> List[Document]:
        try:
            return [(s.id, s.to_dict() or {}) for s in self._col(collection).stream()]
        except GoogleAPIError as exc:
            raise RemoteReadError(f"stream {collection} failed: {exc}") from exc

    def watch(
        self,
        collection: str,
        on_docs: Callable[[List[Document]], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        """Live query over the whole collection; `on_docs` gets the full set every time."""
        def _on_snapshot(col_snapshot, changes, read_time):
            try:
                docs = [(s.id, s.to_dict() or {}) for s in col_snapshot]
            except Exception as exc:  # snapshot decoding runs on the watch thread
                log.exception("snapshot decode failed for %s", collection)
                if on_error:
                    on_error(RemoteReadError(f"snapshot {collection} failed: {exc}"))
                return
            on_docs(docs)

        try:
            watch = self._col(collection).on_snapshot(_on_snapshot)
        except GoogleAPIError as exc:
            raise RemoteReadError(f"watch {collection} failed: {exc}") from exc
        return Subscription(watch.unsubscribe)

    # ───────────────────────── writes ────────────────────────
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        try:
            _, ref = self._col(collection).add(data)
        except GoogleAPIError as exc:
            raise RemoteWriteError(f"add to {collection} failed: {exc}") from exc
        return ref.id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        try:
            self._col(collection).document(doc_id).set(data, merge=merge)
        except GoogleAPIError as exc:
            raise RemoteWriteError(f"set {collection}/{doc_id} failed: {exc}") from exc

    def increment(
        self,
        collection: str,
        doc_id: str,
        deltas: Dict[str, int],
        extra: Optional[Dict[str, Any]] = None,
        create: bool = False,
    ) -> None:
        """
        Atomically add `deltas` to numeric fields; `extra` fields are written as-is.
        With `create=True` a missing document is created (set+merge), otherwise
        the document must exist (update).
        """
        payload: Dict[str, Any] = {k: firestore.Increment(v) for k, v in deltas.items()}
        if extra:
            payload.update(extra)
        ref = self._col(collection).document(doc_id)
        try:
            if create:
                ref.set(payload, merge=True)
            else:
                ref.update(payload)
        except GoogleAPIError as exc:
            raise RemoteWriteError(f"increment {collection}/{doc_id} failed: {exc}") from exc

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            self._col(collection).document(doc_id).delete()
        except GoogleAPIError as exc:
            raise RemoteWriteError(f"delete {collection}/{doc_id} failed: {exc}") from exc

    def batch_set(self, collection: str, updates: List[Document], merge: bool = True, chunk: int = 400) -> int:
        """Write many documents in Firestore batches (500-op limit per commit)."""
        written = 0
        batch = self._fs.batch()
        try:
            for doc_id, data in updates:
                batch.set(self._col(collection).document(doc_id), data, merge=merge)
                written += 1
                if written % chunk == 0:
                    batch.commit()
                    log.info("committed %s docs so far", written)
                    batch = self._fs.batch()
            if written % chunk:
                batch.commit()
        except GoogleAPIError as exc:
            raise RemoteWriteError(f"batch write to {collection} failed: {exc}") from exc
        return written
