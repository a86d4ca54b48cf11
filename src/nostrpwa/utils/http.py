"""HTTP helpers shared by the NIP-05 resolver and the Blossom client.

Bodies returned by third-party servers are read with a size cap so a
misbehaving endpoint cannot exhaust memory.

See Also:
    [resolve_identifier][nostrpwa.nips.nip05.resolve_identifier]:
        Reads ``nostr.json`` with [read_bounded_json][nostrpwa.utils.http.read_bounded_json].
    [upload_blob][nostrpwa.nips.blossom.upload_blob]: Reads blob
        descriptors with [read_bounded_json][nostrpwa.utils.http.read_bounded_json].
"""

from __future__ import annotations

import json
from typing import Any

import aiohttp


async def _read_bounded(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Read an entire response body with size enforcement.

    Accumulates chunks until EOF, which also handles chunked
    transfer-encoding where one read may return fewer bytes than requested.

    Raises:
        ValueError: If the response body exceeds *max_size*.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_bounded_json(response: aiohttp.ClientResponse, max_size: int) -> Any:
    """Read and parse a JSON response body with size enforcement.

    Args:
        response: An aiohttp response whose body has not yet been consumed.
        max_size: Maximum allowed response body size in bytes.

    Returns:
        The parsed JSON value.

    Raises:
        ValueError: If the body exceeds *max_size* (checked before parsing).
        json.JSONDecodeError: If the body is not valid JSON.
    """
    body = await _read_bounded(response, max_size)
    return json.loads(body)


def ensure_scheme(url: str, default: str = "https") -> str:
    """Prefix ``default://`` to a bare host such as ``cdn.example.com``.

    URLs that already start with ``http://`` or ``https://`` are returned
    unchanged apart from surrounding whitespace.
    """
    url = url.strip()
    if url.lower().startswith(("http://", "https://")):
        return url
    return f"{default}://{url}"
