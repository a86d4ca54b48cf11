"""Event builders for every kind the tool writes, plus server-list parsing.

Builders return [EventTemplate][nostrpwa.models.event.EventTemplate]
instances rather than ``nostr_sdk.EventBuilder`` because signing may happen
on a remote signer: the template is authored and hashed locally, and only
the id travels to whoever holds the key.

See Also:
    [nostrpwa.services.publisher.Publisher][]: Consumes
        [build_media_announcement][nostrpwa.nips.event_builders.build_media_announcement]
        and [servers_from_event][nostrpwa.nips.event_builders.servers_from_event].
    [nostrpwa.nips.blossom][]: Signs
        [build_upload_auth][nostrpwa.nips.event_builders.build_upload_auth] events.
"""

from __future__ import annotations

from collections.abc import Sequence
from time import time
from typing import TYPE_CHECKING

from nostrpwa.models.constants import PWA_ALT_TEXT, PWA_MIME_TYPE, EventKind
from nostrpwa.models.event import EventTemplate


if TYPE_CHECKING:
    from nostrpwa.models.blob import BlobDescriptor
    from nostrpwa.models.event import SignedEvent


# =============================================================================
# Constants
# =============================================================================

_MIN_TAG_LEN = 2
_SERVER_TAG_NAMES = frozenset({"r", "server"})

UPLOAD_AUTH_TTL = 3600


# =============================================================================
# Kind 1063: File Metadata (NIP-94)
# =============================================================================


def build_media_announcement(
    blob: BlobDescriptor,
    filename: str,
    *,
    mime_type: str = PWA_MIME_TYPE,
    alt: str = PWA_ALT_TEXT,
    thumb: str | None = None,
) -> EventTemplate:
    """Build the kind 1063 announcement for an uploaded archive.

    Content is the filename. Tags, in order: ``name``, ``size``, ``m``,
    ``x``, ``url``, ``thumb`` (only when given) and ``alt``.
    """
    tags: list[list[str]] = [
        ["name", filename],
        ["size", str(blob.size)],
        ["m", mime_type],
        ["x", blob.sha256],
        ["url", blob.url],
    ]
    if thumb:
        tags.append(["thumb", thumb])
    tags.append(["alt", alt])
    return EventTemplate(kind=EventKind.FILE_METADATA, content=filename, tags=tags)


# =============================================================================
# Kind 24242: Blossom Authorization (BUD-02)
# =============================================================================


def build_upload_auth(
    sha256: str,
    size: int,
    filename: str,
    *,
    ttl: int = UPLOAD_AUTH_TTL,
    created_at: int | None = None,
) -> EventTemplate:
    """Build a Blossom upload authorization bound to one blob.

    The token is valid for ``ttl`` seconds and may be presented to any
    number of servers.
    """
    now = int(time()) if created_at is None else created_at
    return EventTemplate(
        kind=EventKind.BLOSSOM_AUTH,
        content=f"Upload {filename}",
        tags=[
            ["t", "upload"],
            ["x", sha256],
            ["size", str(size)],
            ["expiration", str(now + ttl)],
        ],
        created_at=now,
    )


# =============================================================================
# Kind 10063: User Server List (BUD-03)
# =============================================================================


def is_server_tag(tag: Sequence[str]) -> bool:
    """A tag names a server if it is ``["r", url, ...]`` or ``["server", url, ...]``."""
    return len(tag) >= _MIN_TAG_LEN and tag[0] in _SERVER_TAG_NAMES and bool(tag[1])


def servers_from_event(event: SignedEvent) -> list[str]:
    """Return server URLs from a kind 10063 event, in tag order, without duplicates."""
    servers: list[str] = []
    for tag in event.tags:
        if is_server_tag(tag) and tag[1] not in servers:
            servers.append(tag[1])
    return servers


__all__ = [
    "UPLOAD_AUTH_TTL",
    "build_media_announcement",
    "build_upload_auth",
    "is_server_tag",
    "servers_from_event",
]
