"""Shared constants for the models layer.

Event kinds, MIME type and enum values used by more than one module. Kept
in the models layer so that ``nips`` and ``services`` can both import them
without cycles.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class EventKind(IntEnum):
    """Nostr event kinds the tool reads or writes.

    Attributes:
        SET_METADATA: Kind 0 -- user profile (NIP-01), read for the
            "Signing as" line.
        FILE_METADATA: Kind 1063 -- NIP-94 file metadata, the media
            announcement published for every upload.
        USER_MEDIA_SERVERS: Kind 10063 -- the user's Blossom server list
            (BUD-03), read when no ``--servers`` are given.
        NOSTR_CONNECT: Kind 24133 -- NIP-46 remote signing RPC messages.
        BLOSSOM_AUTH: Kind 24242 -- Blossom authorization events (BUD-02).
    """

    SET_METADATA = 0
    FILE_METADATA = 1063
    USER_MEDIA_SERVERS = 10_063
    NOSTR_CONNECT = 24_133
    BLOSSOM_AUTH = 24_242


class SessionState(StrEnum):
    """States of a [PairingSession][nostrpwa.nips.nip46.PairingSession].

    ``READY`` and ``FAILED`` are terminal.
    """

    INIT = "init"
    RESOLVING_IDENTITY = "resolving_identity"
    AWAITING_REMOTE_READY = "awaiting_remote_ready"
    READY = "ready"
    FAILED = "failed"


class PairingShape(StrEnum):
    """How a pairing string was interpreted.

    Attributes:
        IDENTITY: ``name@domain`` NIP-05 identifier.
        BUNKER_URI: ``bunker://<pubkey>?relay=...`` direct-connection URI.
        TOKEN: Anything else, handed to the RPC layer as-is.
    """

    IDENTITY = "identity"
    BUNKER_URI = "bunker_uri"
    TOKEN = "token"


class Encryption(StrEnum):
    """Payload encryption used for NIP-46 requests."""

    NIP44 = "nip44"
    NIP04 = "nip04"


PWA_MIME_TYPE = "application/pwa+zip"
PWA_ALT_TEXT = "Packaged PWA"
PWA_EXTENSION = ".pwa"
