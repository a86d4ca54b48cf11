"""
Blossom blob descriptor returned by a storage server after an upload.

See Also:
    [nostrpwa.nips.blossom][]: Parses server responses into
        [BlobDescriptor][nostrpwa.models.blob.BlobDescriptor].
    [nostrpwa.nips.event_builders.build_media_announcement][]: Turns a
        descriptor into the NIP-94 tags.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any


_SHA256 = re.compile(r"[0-9a-f]{64}")


@dataclass(frozen=True, slots=True)
class BlobDescriptor:
    """Location and hash of an uploaded blob (BUD-02).

    Attributes:
        url: Public download URL.
        sha256: Lowercase hex sha256 of the blob.
        size: Size in bytes.
        type: MIME type reported by the server, if any.
        uploaded: Upload timestamp reported by the server, if any.

    Raises:
        ValueError: If the url is empty, the hash is not 64 hex characters
            or the size is negative.
    """

    url: str
    sha256: str
    size: int
    type: str | None = None
    uploaded: int | None = None

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("Blob descriptor has no url")
        object.__setattr__(self, "sha256", self.sha256.lower())
        if not _SHA256.fullmatch(self.sha256):
            raise ValueError(f"Invalid blob sha256: {self.sha256!r}")
        if isinstance(self.size, bool) or self.size < 0:
            raise ValueError(f"Invalid blob size: {self.size!r}")

    @classmethod
    def from_dict(cls, data: Any) -> BlobDescriptor:
        """Parse a server's JSON response body.

        Raises:
            ValueError: If ``data`` is not an object or misses required fields.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected blob descriptor object, got {type(data).__name__}")
        try:
            return cls(
                url=str(data["url"]),
                sha256=str(data["sha256"]),
                size=int(data["size"]),
                type=data.get("type") or None,
                uploaded=int(data["uploaded"]) if data.get("uploaded") is not None else None,
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed blob descriptor: missing or invalid {e}") from e
