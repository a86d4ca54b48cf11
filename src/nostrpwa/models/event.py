"""
Nostr event models: template, unsigned and signed events.

All three are frozen dataclasses with tuple-of-tuple tags so that an event
cannot change between hashing and signing. The event id is computed by
[compute_event_id][nostrpwa.models.event.compute_event_id] from the NIP-01
canonical serialization::

    sha256(json([0, pubkey, created_at, kind, tags, content]))

with no whitespace between tokens and UTF-8 output. A
[SignedEvent][nostrpwa.models.event.SignedEvent] re-computes the id at
construction and rejects a mismatch, so every instance in the program
satisfies ``event.id == compute_event_id(...)``.

Signature verification is delegated to ``nostr_sdk``.

See Also:
    [nostrpwa.nips.event_builders][]: Builders producing
        [EventTemplate][nostrpwa.models.event.EventTemplate] instances.
    [nostrpwa.core.pool.RelayPool][]: Sends and receives
        [SignedEvent][nostrpwa.models.event.SignedEvent] instances.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from time import time
from typing import Any

from nostr_sdk import Event as NostrEvent


_HEX64 = re.compile(r"[0-9a-f]{64}")
_HEX128 = re.compile(r"[0-9a-f]{128}")

Tags = tuple[tuple[str, ...], ...]


def freeze_tags(tags: Iterable[Sequence[str]]) -> Tags:
    """Convert any sequence of string sequences to an immutable tuple form."""
    frozen = tuple(tuple(str(value) for value in tag) for tag in tags)
    if any(not tag for tag in frozen):
        raise ValueError("Tags must not be empty")
    return frozen


def serialize_event(pubkey: str, created_at: int, kind: int, tags: Tags, content: str) -> str:
    """Return the NIP-01 canonical serialization used for hashing."""
    return json.dumps(
        [0, pubkey, created_at, kind, [list(tag) for tag in tags], content],
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compute_event_id(pubkey: str, created_at: int, kind: int, tags: Tags, content: str) -> str:
    """Return the hex sha256 of the canonical serialization."""
    payload = serialize_event(pubkey, created_at, kind, tags, content)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True, slots=True)
class EventTemplate:
    """Event draft without an author.

    This is what a signing callback receives: the signer fills in its own
    public key via [with_pubkey()][nostrpwa.models.event.EventTemplate.with_pubkey].
    """

    kind: int
    content: str
    tags: Tags = ()
    created_at: int = field(default_factory=lambda: int(time()))

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", freeze_tags(self.tags))
        _validate_kind(self.kind)

    def with_pubkey(self, pubkey: str) -> UnsignedEvent:
        return UnsignedEvent(
            pubkey=pubkey,
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
        )


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """Event with an author but no signature.

    Attributes:
        pubkey: Author public key, 64 lowercase hex characters.
        created_at: Unix timestamp in seconds.
        kind: Event kind.
        tags: Ordered tags, each an ordered tuple of strings.
        content: Event content.
    """

    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str

    def __post_init__(self) -> None:
        if not _HEX64.fullmatch(self.pubkey):
            raise ValueError(f"pubkey must be 64 lowercase hex characters: {self.pubkey!r}")
        if isinstance(self.created_at, bool) or self.created_at < 0:
            raise ValueError("created_at must be a non-negative int")
        _validate_kind(self.kind)
        object.__setattr__(self, "tags", freeze_tags(self.tags))

    @property
    def id(self) -> str:
        return compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def serialize(self) -> str:
        return serialize_event(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object (without ``sig``), including the id."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class SignedEvent:
    """Complete, signed Nostr event.

    Raises:
        ValueError: If ``id`` does not match the recomputed hash of the
            unsigned fields or ``sig`` is not 128 hex characters.

    Examples:
        ```python
        unsigned = template.with_pubkey(pubkey)
        event = SignedEvent.from_unsigned(unsigned, sig)
        event.verify()   # True for a valid Schnorr signature
        ```
    """

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str
    sig: str

    def __post_init__(self) -> None:
        unsigned = UnsignedEvent(self.pubkey, self.created_at, self.kind, self.tags, self.content)
        object.__setattr__(self, "tags", unsigned.tags)
        if self.id != unsigned.id:
            raise ValueError(f"Event id mismatch: got {self.id}, expected {unsigned.id}")
        if not _HEX128.fullmatch(self.sig):
            raise ValueError("sig must be 128 lowercase hex characters")

    @classmethod
    def from_unsigned(cls, unsigned: UnsignedEvent, sig: str) -> SignedEvent:
        return cls(
            id=unsigned.id,
            pubkey=unsigned.pubkey,
            created_at=unsigned.created_at,
            kind=unsigned.kind,
            tags=unsigned.tags,
            content=unsigned.content,
            sig=sig.lower(),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignedEvent:
        """Build from a NIP-01 JSON object.

        Raises:
            ValueError: On missing fields or an inconsistent id.
        """
        try:
            return cls(
                id=str(data["id"]),
                pubkey=str(data["pubkey"]),
                created_at=int(data["created_at"]),
                kind=int(data["kind"]),
                tags=freeze_tags(data.get("tags") or []),
                content=str(data.get("content", "")),
                sig=str(data["sig"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed event: {e}") from e

    @classmethod
    def from_json(cls, raw: str) -> SignedEvent:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError(f"Expected event object, got {type(data).__name__}")
        return cls.from_dict(data)

    @classmethod
    def from_nostr(cls, event: NostrEvent) -> SignedEvent:
        """Convert a ``nostr_sdk.Event`` received from a relay."""
        return cls.from_json(event.as_json())

    @property
    def unsigned(self) -> UnsignedEvent:
        return UnsignedEvent(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def to_dict(self) -> dict[str, Any]:
        return {**self.unsigned.to_dict(), "sig": self.sig}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    def to_nostr(self) -> NostrEvent:
        return NostrEvent.from_json(self.to_json())

    def verify(self) -> bool:
        """Check the Schnorr signature against ``pubkey``."""
        try:
            return bool(self.to_nostr().verify())
        except Exception:  # noqa: BLE001  # nostr-sdk FFI raises its own error types on bad input
            return False

    def tag_values(self, name: str) -> list[str]:
        """Return the second element of every tag whose first element is ``name``."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]  # noqa: PLR2004


def _validate_kind(kind: int) -> None:
    if isinstance(kind, bool) or not isinstance(kind, int) or not 0 <= kind <= 65_535:  # noqa: PLR2004
        raise ValueError(f"kind must be an int in [0, 65535], got {kind!r}")


__all__ = [
    "EventTemplate",
    "SignedEvent",
    "Tags",
    "UnsignedEvent",
    "compute_event_id",
    "freeze_tags",
    "serialize_event",
]
