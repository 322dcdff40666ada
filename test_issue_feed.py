#!/usr/bin/env python3
"""
Issue feed synchronizer: live snapshots, submit, upvote and optimistic delete.
"""
import threading
from datetime import datetime, timedelta, timezone

import pytest

from civicsync.core.errors import (
    IssueNotFoundError,
    NotOwnerError,
    RemoteWriteError,
    SubmissionInProgressError,
    ValidationError,
)
from civicsync.models.issue import IssueDraft, Media, MediaKind
from civicsync.services.issue_feed import DELETE_FAILED, FEED_LOAD_FAILED, SUBMIT_FAILED
from conftest import ISSUES, PROFILES

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _draft(**overrides):
    fields = {"title": "Broken streetlight", "description": "Dark at night", "location": "5th & Pine"}
    fields.update(overrides)
    return IssueDraft(**fields)


def _ids(view):
    return [r.id for r in view]


# ───────────────────────── live view ─────────────────────────

def test_snapshot_produces_sorted_view(store, feed, signed_in, seed_issue):
    seed_issue("a", upvotes=1, created=T0)
    seed_issue("b", upvotes=3, created=T0)
    seed_issue("c", upvotes=1, created=T0 + timedelta(hours=1))
    store.emit(ISSUES)

    assert _ids(feed.view) == ["b", "c", "a"]


def test_each_snapshot_replaces_the_view(store, feed, signed_in, seed_issue):
    seen = []
    feed.subscribe(lambda view: seen.append(_ids(view)))
    seed_issue("a")
    store.emit(ISSUES)
    del store.docs[ISSUES]["a"]
    seed_issue("b")
    store.emit(ISSUES)

    assert seen[-2:] == [["a"], ["b"]]
    assert _ids(feed.view) == ["b"]


def test_subscribe_delivers_latest_view_immediately(store, feed, signed_in, seed_issue):
    seed_issue("a")
    store.emit(ISSUES)
    seen = []
    feed.subscribe(lambda view: seen.append(_ids(view)))
    assert seen == [["a"]]


def test_cancelled_subscription_stops_delivery(store, feed, signed_in, seed_issue):
    seen = []
    sub = feed.subscribe(lambda view: seen.append(view))
    sub.cancel()
    seed_issue("a")
    store.emit(ISSUES)
    assert len(seen) == 1  # only the immediate delivery


def test_empty_collection_is_empty_view_not_error(feed, signed_in):
    assert feed.view == []
    assert feed.load_error is None


def test_start_twice_keeps_single_watch(store, feed, signed_in):
    feed.start()
    assert store.watcher_count(ISSUES) == 1


def test_stop_clears_view_and_closes_watch(store, feed, signed_in, seed_issue):
    seed_issue("a")
    store.emit(ISSUES)
    feed.stop()
    assert feed.view == []
    assert store.watcher_count(ISSUES) == 0


def test_watch_start_failure_reports_load_error(store, feed):
    store.fail.add("watch")
    feed.start()
    assert feed.load_error == FEED_LOAD_FAILED
    assert feed.view == []
    assert not feed.active


def test_stream_error_keeps_stale_view(store, feed, signed_in, seed_issue):
    seed_issue("a")
    store.emit(ISSUES)
    store.fail_watch(ISSUES)
    assert feed.load_error == FEED_LOAD_FAILED
    assert _ids(feed.view) == ["a"]


def test_malformed_document_is_skipped(store, feed, signed_in, seed_issue):
    seed_issue("good")
    seed_issue("bad", coordinates={"lat": 500, "lng": 0})
    store.emit(ISSUES)
    assert _ids(feed.view) == ["good"]


# ───────────────────────── submit ─────────────────────────

@pytest.mark.parametrize("field", ["title", "description", "location"])
@pytest.mark.parametrize("blank", ["", "   ", "\n\t"])
def test_submit_with_blank_field_never_writes(store, feed, signed_in, field, blank):
    before = list(store.writes())
    with pytest.raises(ValidationError, match="All fields are required."):
        feed.submit(_draft(**{field: blank}), signed_in)
    assert store.writes() == before


def test_submit_writes_forced_fields(store, feed, signed_in, clock):
    media = Media(kind=MediaKind.VIDEO, locator="data:video/webm;base64,AA==")
    issue_id = feed.submit(_draft(title="  Pothole  ", media=media), signed_in)

    doc = store.docs[ISSUES][issue_id]
    assert doc["title"] == "Pothole"
    assert doc["status"] == "Acknowledged"
    assert doc["upvotes"] == 0
    assert doc["reporterId"] == "alice"
    assert doc["createdAt"] == clock.now
    assert doc["media"] == {"kind": "video", "locator": "data:video/webm;base64,AA=="}
    assert doc["coordinates"] is None
    assert issue_id in _ids(feed.view)


def test_first_submit_updates_profile(store, feed, ledger, signed_in):
    feed.submit(_draft(), signed_in)

    profile = store.docs[PROFILES]["alice"]
    assert profile["reportedIssues"] == 1
    assert profile["points"] == 10
    assert "First Report" in profile["badges"]
    assert ledger.current.points == 10


def test_five_submits_award_neighborhood_hero(store, feed, signed_in):
    for i in range(5):
        feed.submit(_draft(title=f"Issue {i}"), signed_in)
    assert set(store.docs[PROFILES]["alice"]["badges"]) >= {"First Report", "Neighborhood Hero"}


def test_submit_store_failure_surfaces_generic_message(store, feed, signed_in):
    store.fail.add("add")
    with pytest.raises(RemoteWriteError, match=SUBMIT_FAILED):
        feed.submit(_draft(), signed_in)
    assert store.docs[PROFILES]["alice"]["points"] == 0
    assert not feed.is_submitting


def test_profile_failure_does_not_roll_back_issue(store, feed, signed_in):
    store.fail.add("increment:profiles")
    with pytest.raises(RemoteWriteError, match=SUBMIT_FAILED):
        feed.submit(_draft(), signed_in)

    assert len(store.docs[ISSUES]) == 1
    assert store.docs[PROFILES]["alice"]["points"] == 0


def test_second_submit_while_first_in_flight_is_refused(store, feed, signed_in):
    entered = threading.Event()
    release = threading.Event()
    original_add = store.add

    def slow_add(collection, data):
        entered.set()
        release.wait(5)
        return original_add(collection, data)

    store.add = slow_add
    worker = threading.Thread(target=feed.submit, args=(_draft(), signed_in))
    worker.start()
    try:
        assert entered.wait(5)
        assert feed.is_submitting
        with pytest.raises(SubmissionInProgressError):
            feed.submit(_draft(title="again"), signed_in)
    finally:
        release.set()
        worker.join(5)

    assert not feed.is_submitting
    assert len(store.docs[ISSUES]) == 1


# ───────────────────────── upvote ─────────────────────────

def test_upvote_increments_by_exactly_one(store, feed, signed_in, seed_issue):
    seed_issue("a", upvotes=2)
    assert feed.upvote("a") is True
    assert store.docs[ISSUES]["a"]["upvotes"] == 3
    assert feed.view[0].upvotes == 3


def test_upvote_has_no_local_optimism(store, feed, signed_in, seed_issue):
    seed_issue("a", upvotes=0)
    store.emit(ISSUES)
    store.auto_emit = False

    feed.upvote("a")

    assert feed.view[0].upvotes == 0
    store.emit(ISSUES)
    assert feed.view[0].upvotes == 1


def test_concurrent_upvotes_converge(store, feed, signed_in, seed_issue):
    seed_issue("a", upvotes=4)
    store.auto_emit = False
    callers = [threading.Thread(target=feed.upvote, args=("a",)) for _ in range(25)]
    for t in callers:
        t.start()
    for t in callers:
        t.join(5)
    assert store.docs[ISSUES]["a"]["upvotes"] == 29


def test_upvote_failure_is_swallowed(store, feed, signed_in, seed_issue):
    seed_issue("a", upvotes=1)
    store.fail.add("increment:issues")
    assert feed.upvote("a") is False
    assert store.docs[ISSUES]["a"]["upvotes"] == 1


def test_upvote_requires_sign_in(store, feed, seed_issue):
    seed_issue("a")
    assert feed.upvote("a") is False
    assert store.writes() == []


# ───────────────────────── delete ─────────────────────────

def test_delete_removes_immediately_then_reverses_points(store, feed, ledger, signed_in):
    issue_id = feed.submit(_draft(), signed_in)
    store.auto_emit = False
    seen = []
    feed.subscribe(lambda view: seen.append(_ids(view)))

    feed.delete(issue_id, signed_in)

    assert seen[1] == []  # first publish after the immediate delivery
    assert issue_id not in store.docs[ISSUES]
    profile = store.docs[PROFILES]["alice"]
    assert profile["points"] == 0 and profile["reportedIssues"] == 0
    assert profile["badges"] == ["First Report"]
    assert ledger.current.points == 0


def test_failed_delete_restores_original_position(store, feed, signed_in, seed_issue):
    seed_issue("top", upvotes=9, created=T0)
    seed_issue("mine", upvotes=4, created=T0)
    seed_issue("low", upvotes=1, created=T0)
    store.emit(ISSUES)
    store.fail.add("delete")
    seen = []
    feed.subscribe(lambda view: seen.append(_ids(view)))

    with pytest.raises(RemoteWriteError, match=DELETE_FAILED):
        feed.delete("mine", signed_in)

    assert seen[1] == ["top", "low"]
    assert _ids(feed.view) == ["top", "mine", "low"]
    assert store.docs[PROFILES]["alice"]["points"] == 0


def test_point_reversal_failure_keeps_record_deleted(store, feed, signed_in):
    issue_id = feed.submit(_draft(), signed_in)
    store.fail.add("increment:profiles")

    feed.delete(issue_id, signed_in)

    assert issue_id not in store.docs[ISSUES]
    assert issue_id not in _ids(feed.view)
    assert store.docs[PROFILES]["alice"]["points"] == 10


def test_delete_of_someone_elses_report_is_refused(store, feed, signed_in, seed_issue):
    seed_issue("theirs", reporter="bob")
    store.emit(ISSUES)
    with pytest.raises(NotOwnerError):
        feed.delete("theirs", signed_in)
    assert "theirs" in _ids(feed.view)
    assert ("delete", ISSUES) not in store.calls


def test_delete_unknown_report(feed, signed_in):
    with pytest.raises(IssueNotFoundError):
        feed.delete("ghost", signed_in)
