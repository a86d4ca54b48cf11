"""Nostr protocol logic: NIP-05 lookup, NIP-46 remote signing, Blossom uploads.

This layer performs network I/O and depends on
[nostrpwa.models][nostrpwa.models], [nostrpwa.utils][nostrpwa.utils] and
the pool and exceptions in [nostrpwa.core][nostrpwa.core].

Attributes:
    PairingSession: Turns a pairing string into a ready
        [RemoteSigner][nostrpwa.nips.nip46.RemoteSigner]. See
        [nostrpwa.nips.nip46][nostrpwa.nips.nip46].
    upload_to_servers: Signs one Blossom authorization and uploads a blob to
        several servers, keeping the first success in list order.
    resolve_identifier: NIP-05 ``name@domain`` lookup.
    build_media_announcement: Kind 1063 template for an uploaded archive.
"""

from .blossom import upload_to_servers
from .event_builders import (
    build_media_announcement,
    build_upload_auth,
    is_server_tag,
    servers_from_event,
)
from .nip05 import Nip05Identity, resolve_identifier
from .nip46 import (
    NostrConnectRpc,
    PairingSession,
    PairingTarget,
    RemoteSigner,
    classify_pairing_string,
    parse_bunker_uri,
    parse_token,
)


__all__ = [
    "Nip05Identity",
    "NostrConnectRpc",
    "PairingSession",
    "PairingTarget",
    "RemoteSigner",
    "build_media_announcement",
    "build_upload_auth",
    "classify_pairing_string",
    "is_server_tag",
    "parse_bunker_uri",
    "parse_token",
    "resolve_identifier",
    "servers_from_event",
    "upload_to_servers",
]
