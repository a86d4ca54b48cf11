"""Blossom (BUD-01/02) blob upload with multi-server fallback.

A single kind 24242 authorization event is signed once per archive and
presented to every server as::

    Authorization: Nostr <base64(event json)>

Each server receives an independent ``PUT <server>/upload``. Attempts run
concurrently; failures (network errors, non-2xx responses, malformed or
mismatching descriptors) are logged with the server URL and never abort the
other attempts. The descriptor of the first successful server in list
order is returned.

Examples:
    ```python
    blob = await upload_to_servers(
        payload,
        "app_1-0-0.pwa",
        ["https://cdn.example.com", "blossom.example.org"],
        sign_callback,
        mime_type="application/pwa+zip",
    )
    print(blob.url)
    ```

See Also:
    [build_upload_auth][nostrpwa.nips.event_builders.build_upload_auth]:
        Builds the authorization event template.
    [BlobDescriptor][nostrpwa.models.blob.BlobDescriptor]: Parsed server
        response.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING

import aiohttp

from nostrpwa.core.exceptions import UploadFailedError
from nostrpwa.models.blob import BlobDescriptor
from nostrpwa.utils.http import ensure_scheme, read_bounded_json

from .event_builders import build_upload_auth


if TYPE_CHECKING:
    from nostrpwa.models.event import EventTemplate, SignedEvent


logger = logging.getLogger(__name__)

SignCallback = Callable[["EventTemplate"], Awaitable["SignedEvent"]]

_DEFAULT_MAX_SIZE = 65_536


def normalize_server_url(server: str) -> str:
    """Return ``server`` with an ``https://`` default scheme and no trailing slash."""
    return ensure_scheme(server).rstrip("/")


def auth_header(event: SignedEvent) -> str:
    """Encode a signed authorization event as an ``Authorization`` header value."""
    token = base64.b64encode(event.to_json().encode("utf-8")).decode("ascii")
    return f"Nostr {token}"


async def upload_blob(
    session: aiohttp.ClientSession,
    server: str,
    payload: bytes,
    authorization: str,
    *,
    sha256: str,
    mime_type: str | None = None,
    max_size: int = _DEFAULT_MAX_SIZE,
) -> BlobDescriptor:
    """Upload ``payload`` to one server.

    Args:
        session: Shared HTTP session.
        server: Normalized server base URL.
        payload: Blob bytes.
        authorization: Value of the ``Authorization`` header.
        sha256: Expected hash of ``payload``; the server must echo it.
        mime_type: ``Content-Type`` sent with the body.
        max_size: Maximum accepted response body size in bytes.

    Returns:
        The server's [BlobDescriptor][nostrpwa.models.blob.BlobDescriptor].

    Raises:
        ValueError: On a non-2xx status (with the ``X-Reason`` header when
            present), a malformed body, or a descriptor whose hash differs
            from ``sha256``.
        aiohttp.ClientError: On transport failures.
        TimeoutError: If the session timeout elapses.
    """
    headers = {"Authorization": authorization}
    if mime_type:
        headers["Content-Type"] = mime_type

    async with session.put(f"{server}/upload", data=payload, headers=headers) as resp:
        if not 200 <= resp.status < 300:  # noqa: PLR2004
            reason = resp.headers.get("X-Reason") or resp.reason or ""
            raise ValueError(f"HTTP {resp.status} {reason}".strip())
        data = await read_bounded_json(resp, max_size)

    blob = BlobDescriptor.from_dict(data)
    if blob.sha256 != sha256:
        raise ValueError(f"Server returned hash {blob.sha256}, expected {sha256}")
    return blob


async def upload_to_servers(
    payload: bytes,
    filename: str,
    servers: Sequence[str],
    sign: SignCallback,
    *,
    mime_type: str | None = None,
    timeout: float = 300.0,  # noqa: ASYNC109
    max_size: int = _DEFAULT_MAX_SIZE,
) -> BlobDescriptor:
    """Upload ``payload`` to every server and keep the first success.

    Args:
        payload: Blob bytes.
        filename: Used in the authorization event content.
        servers: Candidate servers, in preference order. Bare hosts get
            ``https://``.
        sign: Signs the authorization template; called exactly once.
        mime_type: ``Content-Type`` sent with the body.
        timeout: Total timeout per upload attempt in seconds.
        max_size: Maximum accepted response body size in bytes.

    Raises:
        UploadFailedError: If ``servers`` is empty or every attempt failed.
    """
    targets = [normalize_server_url(s) for s in servers if s.strip()]
    if not targets:
        raise UploadFailedError("No upload servers given")

    sha256 = hashlib.sha256(payload).hexdigest()
    auth_event = await sign(build_upload_auth(sha256, len(payload), filename))
    authorization = auth_header(auth_event)

    async def attempt(session: aiohttp.ClientSession, server: str) -> BlobDescriptor | None:
        try:
            blob = await upload_blob(
                session,
                server,
                payload,
                authorization,
                sha256=sha256,
                mime_type=mime_type,
                max_size=max_size,
            )
        except asyncio.CancelledError:
            raise
        except (OSError, TimeoutError, aiohttp.ClientError, ValueError) as e:
            logger.warning("upload_failed server=%s error=%s", server, str(e) or type(e).__name__)
            return None
        logger.info("upload_succeeded server=%s url=%s", server, blob.url)
        return blob

    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
        results = await asyncio.gather(*(attempt(session, server) for server in targets))

    for blob in results:
        if blob is not None:
            return blob
    raise UploadFailedError(f"Upload failed on all {len(targets)} server(s)")


__all__ = [
    "SignCallback",
    "auth_header",
    "normalize_server_url",
    "upload_blob",
    "upload_to_servers",
]
