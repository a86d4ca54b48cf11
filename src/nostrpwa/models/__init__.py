"""Pure frozen dataclasses with no network I/O.

Every model uses ``@dataclass(frozen=True, slots=True)`` and validates in
``__post_init__``, so invalid instances never escape the constructor.

Attributes:
    EventTemplate: Event draft without an author (what signing callbacks get).
    UnsignedEvent: Authored event whose id is the NIP-01 hash.
    SignedEvent: Unsigned event plus id and Schnorr signature; rejects an
        id that does not match its fields.
    BlobDescriptor: Blossom upload result (url, sha256, size, type).
    Relay: RFC 3986 validated ``ws``/``wss`` relay URL.

See Also:
    [nostrpwa.models.constants][]: Event kinds and enums shared across layers.
"""

from .blob import BlobDescriptor
from .constants import (
    PWA_ALT_TEXT,
    PWA_EXTENSION,
    PWA_MIME_TYPE,
    Encryption,
    EventKind,
    PairingShape,
    SessionState,
)
from .event import EventTemplate, SignedEvent, UnsignedEvent, compute_event_id
from .relay import Relay, parse_relay_list


__all__ = [
    "PWA_ALT_TEXT",
    "PWA_EXTENSION",
    "PWA_MIME_TYPE",
    "BlobDescriptor",
    "Encryption",
    "EventKind",
    "EventTemplate",
    "PairingShape",
    "Relay",
    "SessionState",
    "SignedEvent",
    "UnsignedEvent",
    "compute_event_id",
    "parse_relay_list",
]
