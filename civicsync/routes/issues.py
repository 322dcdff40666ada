# civicsync/routes/issues.py
from __future__ import annotations

import asyncio
import json
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse

from civicsync.core.config import settings
from civicsync.core.errors import ValidationError
from civicsync.models.issue import Coordinates, IssueDraft
from civicsync.services.auth import get_current_session
from civicsync.services.issue_feed import EMPTY_FEED, IssueFeedSynchronizer
from civicsync.services.media import media_from_upload
from civicsync.services.registry import ClientSession

router = APIRouter(prefix="/issues", tags=["issues"])


def _feed_payload(view, feed: IssueFeedSynchronizer, viewer_uid: Optional[str]) -> dict:
    return {
        "issues": [r.to_public(viewer_uid) for r in view],
        "empty": not view,
        "message": EMPTY_FEED if not view else None,
        "error": feed.load_error,
        "isSubmitting": feed.is_submitting,
    }


async def feed_events(feed: IssueFeedSynchronizer, context, keepalive_s: float) -> AsyncGenerator[str, None]:
    """
    Server-Sent Events: one `data:` frame per published view. Views arrive on
    the Firestore watch thread and are handed to the event loop; the stream
    ends once the session signs out.
    """
    loop = asyncio.get_running_loop()
    views: asyncio.Queue = asyncio.Queue()
    sub = feed.subscribe(lambda view: loop.call_soon_threadsafe(views.put_nowait, view))
    try:
        while context.identity is not None:
            try:
                view = await asyncio.wait_for(views.get(), timeout=keepalive_s)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            identity = context.identity
            if identity is None:
                break
            yield f"data: {json.dumps(_feed_payload(view, feed, identity.uid))}\n\n"
    finally:
        sub.cancel()


# ───────────────────────── routes ─────────────────────────

@router.get("")
def list_issues(session: ClientSession = Depends(get_current_session)):
    return _feed_payload(session.feed.view, session.feed, session.context.identity.uid)


@router.get("/stream")
async def stream_issues(session: ClientSession = Depends(get_current_session)):
    return StreamingResponse(
        feed_events(session.feed, session.context, settings.sse_keepalive_s),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.post("")
def submit_issue(
    title: str = Form(""),
    description: str = Form(""),
    location: str = Form(""),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    media: Optional[UploadFile] = File(None),
    session: ClientSession = Depends(get_current_session),
):
    identity = session.context.require_identity()

    coordinates = None
    if lat is not None and lng is not None:
        try:
            coordinates = Coordinates(lat=lat, lng=lng)
        except ValueError:
            raise ValidationError("Coordinates are out of range.") from None

    # one byte past the cap is enough to reject an oversized file
    data = media.file.read(settings.max_media_bytes + 1) if media is not None else None
    draft = IssueDraft(
        title=title,
        description=description,
        location=location,
        coordinates=coordinates,
        media=media_from_upload(data, media.content_type if media else None, settings.max_media_bytes),
    )
    issue_id = session.feed.submit(draft, identity)
    return {"id": issue_id}


@router.post("/{issue_id}/upvote")
def upvote_issue(issue_id: str, session: ClientSession = Depends(get_current_session)):
    return {"ok": session.feed.upvote(issue_id)}


@router.delete("/{issue_id}")
def delete_issue(issue_id: str, session: ClientSession = Depends(get_current_session)):
    session.feed.delete(issue_id, session.context.require_identity())
    return {"ok": True}
