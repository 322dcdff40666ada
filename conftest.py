"""
Shared fixtures: an in-memory stand-in for the Firestore store and one for
the Firebase auth client, so no test touches the network.
"""
import copy
import itertools
import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest

from civicsync.core.errors import AuthError, RemoteReadError, RemoteWriteError
from civicsync.core.subscription import Subscription
from civicsync.models.profile import Identity
from civicsync.services.issue_feed import IssueFeedSynchronizer
from civicsync.services.profile_ledger import ProfileLedger
from civicsync.services.session import SessionContext, SessionManager

ISSUES = "artifacts/test-app/public/data/issues"
PROFILES = "artifacts/test-app/public/data/profiles"


class InMemoryStore:
    """
    Mirrors `FirestoreStore`'s surface. Writes push a fresh snapshot to the
    collection's watchers unless `auto_emit` is off. `fail` holds operation
    names ("add", "delete", ...) or "op:collection-suffix" pairs that should
    raise.
    """

    def __init__(self):
        self.docs = defaultdict(dict)
        self.fail = set()
        self.calls = []
        self.auto_emit = True
        self._watchers = defaultdict(list)
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def _check(self, op, collection, error=RemoteWriteError):
        self.calls.append((op, collection))
        tail = collection.rsplit("/", 1)[-1]
        if op in self.fail or f"{op}:{tail}" in self.fail:
            raise error(f"{op} {collection} failed")

    def writes(self):
        return [c for c in self.calls if c[0] in ("add", "set", "increment", "delete")]

    def emit(self, collection):
        with self._lock:
            docs = [(k, copy.deepcopy(v)) for k, v in self.docs[collection].items()]
            watchers = list(self._watchers[collection])
        for on_docs, _ in watchers:
            on_docs(docs)

    def fail_watch(self, collection):
        for _, on_error in list(self._watchers[collection]):
            if on_error:
                on_error(RemoteReadError("stream broken"))

    def _written(self, collection):
        if self.auto_emit:
            self.emit(collection)

    # reads
    def get(self, collection, doc_id):
        self._check("get", collection, RemoteReadError)
        data = self.docs[collection].get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def exists(self, collection, doc_id):
        self._check("exists", collection, RemoteReadError)
        return doc_id in self.docs[collection]

    def stream(self, collection):
        self._check("stream", collection, RemoteReadError)
        return [(k, copy.deepcopy(v)) for k, v in self.docs[collection].items()]

    def watch(self, collection, on_docs, on_error=None):
        self._check("watch", collection, RemoteReadError)
        entry = (on_docs, on_error)
        self._watchers[collection].append(entry)
        self.emit(collection)
        return Subscription(lambda: self._watchers[collection].remove(entry))

    def watcher_count(self, collection):
        return len(self._watchers[collection])

    # writes
    def add(self, collection, data):
        self._check("add", collection)
        doc_id = f"doc{next(self._ids)}"
        with self._lock:
            self.docs[collection][doc_id] = copy.deepcopy(data)
        self._written(collection)
        return doc_id

    def set(self, collection, doc_id, data, merge=False):
        self._check("set", collection)
        with self._lock:
            if merge and doc_id in self.docs[collection]:
                self.docs[collection][doc_id].update(copy.deepcopy(data))
            else:
                self.docs[collection][doc_id] = copy.deepcopy(data)
        self._written(collection)

    def increment(self, collection, doc_id, deltas, extra=None, create=False):
        self._check("increment", collection)
        with self._lock:
            doc = self.docs[collection].get(doc_id)
            if doc is None:
                if not create:
                    raise RemoteWriteError(f"no document {collection}/{doc_id}")
                doc = self.docs[collection][doc_id] = {}
            for field, delta in deltas.items():
                doc[field] = doc.get(field, 0) + delta
            if extra:
                doc.update(copy.deepcopy(extra))
        self._written(collection)

    def delete(self, collection, doc_id):
        self._check("delete", collection)
        with self._lock:
            self.docs[collection].pop(doc_id, None)
        self._written(collection)

    def batch_set(self, collection, updates, merge=True, chunk=400):
        for doc_id, data in updates:
            self.set(collection, doc_id, data, merge=merge)
        return len(updates)


class StubAuth:
    def __init__(self):
        self.users = {}
        self.fail = set()
        self.calls = []
        self._anon = itertools.count(1)

    def _check(self, op):
        self.calls.append(op)
        if op in self.fail:
            raise AuthError(f"{op} unavailable")

    def sign_in_with_password(self, email, password):
        self._check("password")
        user = self.users.get(email)
        if not user or user[0] != password:
            raise AuthError("Invalid email or password.")
        return Identity(uid=user[1], email=email, id_token="tok")

    def sign_up(self, email, password):
        self._check("signup")
        if email in self.users:
            raise AuthError("The email address is already in use by another account.")
        uid = f"uid-{email.split('@')[0]}"
        self.users[email] = (password, uid)
        return Identity(uid=uid, email=email, id_token="tok")

    def sign_in_anonymously(self):
        self._check("anonymous")
        return Identity(uid=f"anon-{next(self._anon)}", is_anonymous=True, id_token="tok")

    def sign_in_with_custom_token(self, token):
        self._check("custom_token")
        return Identity(uid=f"custom-{token}", id_token="tok")

    def sign_out(self, identity):
        self._check("sign_out")
        identity.id_token = None


class TickingClock:
    """Each call is one second after the previous one."""

    def __init__(self, start=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def auth():
    return StubAuth()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def context():
    return SessionContext()


@pytest.fixture
def ledger(store):
    return ProfileLedger(store, PROFILES)


@pytest.fixture
def feed(store, ledger, context, clock):
    return IssueFeedSynchronizer(store, ISSUES, ledger, context, clock=clock)


@pytest.fixture
def manager(context, auth, ledger, feed):
    return SessionManager(context, auth, ledger, feed)


@pytest.fixture
def alice():
    return Identity(uid="alice", email="alice@example.com")


@pytest.fixture
def bob():
    return Identity(uid="bob", email="bob@example.com")


@pytest.fixture
def signed_in(context, ledger, feed, alice):
    """Alice signed in with a loaded profile and a running feed."""
    context.set_identity(alice)
    ledger.load_or_init(alice)
    feed.start()
    return alice


@pytest.fixture
def seed_issue(store):
    def _seed(doc_id, upvotes=0, created=None, reporter="alice", **extra):
        data = {
            "title": f"Issue {doc_id}",
            "description": "desc",
            "location": "Main St",
            "status": "Acknowledged",
            "upvotes": upvotes,
            "reporterId": reporter,
        }
        if created is not None:
            data["createdAt"] = created
        data.update(extra)
        store.docs[ISSUES][doc_id] = data
        return doc_id
    return _seed
