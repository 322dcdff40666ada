# civicsync/services/media.py
from __future__ import annotations

import base64

from civicsync.core.errors import ValidationError
from civicsync.models.issue import Media, MediaKind

_KIND_BY_MIME_PREFIX = {
    "image/": MediaKind.PHOTO,
    "video/": MediaKind.VIDEO,
    "audio/": MediaKind.AUDIO,
}


def kind_for_content_type(content_type: str | None) -> MediaKind:
    ct = (content_type or "").split(";", 1)[0].strip().lower()
    for prefix, kind in _KIND_BY_MIME_PREFIX.items():
        if ct.startswith(prefix):
            return kind
    raise ValidationError("Unsupported media type. Attach a photo, video or audio clip.")


def to_data_url(data: bytes, content_type: str) -> str:
    ct = content_type.split(";", 1)[0].strip().lower()
    return f"data:{ct};base64,{base64.b64encode(data).decode('ascii')}"


def media_from_upload(data: bytes | None, content_type: str | None, max_bytes: int) -> Media:
    """Captured/picked file -> tagged media. Empty uploads mean "no media"."""
    if not data:
        return Media()
    kind = kind_for_content_type(content_type)
    if len(data) > max_bytes:
        raise ValidationError(f"Media file is too large (max {max_bytes // 1000} KB).")
    return Media(kind=kind, locator=to_data_url(data, content_type or ""))
