"""Publication pipeline: upload a ``.pwa`` archive and announce it.

Steps of [Publisher.publish()][nostrpwa.services.publisher.Publisher.publish]:

1. Resolve the upload servers: the ones given, or the signer owner's
   kind 10063 server list.
2. Upload the archive through
   [upload_to_servers][nostrpwa.nips.blossom.upload_to_servers], keeping
   the first success in list order.
3. Build the kind 1063 announcement, sign it with the active signer and
   broadcast it to the configured relays only.

Zero relay acknowledgements is reported through
``BroadcastResult.partial_failure`` and a warning, never raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING

from nostr_sdk import EventId, Filter, Kind, PublicKey

from nostrpwa.core.config import ToolConfig
from nostrpwa.core.exceptions import NoServersConfiguredError, PackagingError
from nostrpwa.core.logger import Logger
from nostrpwa.models.constants import EventKind
from nostrpwa.nips.blossom import upload_to_servers
from nostrpwa.nips.event_builders import build_media_announcement, servers_from_event
from nostrpwa.utils.keys import Signer, sign_event, sign_template


if TYPE_CHECKING:
    from collections.abc import Sequence

    from nostrpwa.core.pool import BroadcastResult, RelayPool
    from nostrpwa.models.blob import BlobDescriptor
    from nostrpwa.models.event import SignedEvent


def event_reference(event_id: str) -> str:
    """Return the shareable ``nostr:note1...`` reference of an event."""
    return "nostr:" + EventId.parse(event_id).to_bech32()


@dataclass(frozen=True, slots=True)
class PublishResult:
    """Outcome of one publish run.

    Attributes:
        event: The signed kind 1063 announcement.
        blob: Descriptor of the uploaded archive.
        broadcast: Per-relay acknowledgements.
    """

    event: SignedEvent
    blob: BlobDescriptor
    broadcast: BroadcastResult

    @property
    def reference(self) -> str:
        return event_reference(self.event.id)


class Publisher:
    """Uploads archives and publishes their announcement with one signer.

    Args:
        pool: Shared relay pool, used for the server-list lookup and the
            broadcast.
        signer: The active signer of this invocation.
        config: Tool configuration.
    """

    def __init__(self, pool: RelayPool, signer: Signer, config: ToolConfig | None = None) -> None:
        self._pool = pool
        self._signer = signer
        self._config = config or ToolConfig()
        self._logger = Logger("publish")

    async def resolve_servers(
        self, servers: Sequence[str] = (), relays: Sequence[str] | None = None
    ) -> list[str]:
        """Return ``servers``, or the signer owner's kind 10063 list from ``relays`` when empty.

        Raises:
            NoServersConfiguredError: No servers given and none published.
        """
        explicit = [s.strip() for s in servers if s.strip()]
        if explicit:
            return explicit

        pubkey = await self._signer.get_public_key()
        event = await self._pool.fetch_latest(
            Filter()
            .kind(Kind(EventKind.USER_MEDIA_SERVERS))
            .author(PublicKey.parse(pubkey))
            .limit(1),
            relays,
        )
        found = servers_from_event(event) if event is not None else []
        if not found:
            raise NoServersConfiguredError(
                "No upload servers: pass --servers or publish a kind 10063 server list"
            )
        self._logger.info("servers_from_profile", count=len(found))
        return found

    async def upload(self, payload: bytes, filename: str, servers: Sequence[str]) -> BlobDescriptor:
        """Upload ``payload`` to ``servers``, signing the authorization with the active signer."""
        return await upload_to_servers(
            payload,
            filename,
            servers,
            partial(sign_template, self._signer),
            mime_type=self._config.mime_type,
            timeout=self._config.timeouts.upload,
            max_size=self._config.max_response_size,
        )

    async def announce(
        self,
        blob: BlobDescriptor,
        filename: str,
        relays: Sequence[str],
        *,
        thumb: str | None = None,
    ) -> tuple[SignedEvent, BroadcastResult]:
        """Sign the kind 1063 announcement for ``blob`` and send it to ``relays``."""
        template = build_media_announcement(
            blob,
            filename,
            mime_type=self._config.mime_type,
            alt=self._config.alt_text,
            thumb=thumb,
        )
        pubkey = await self._signer.get_public_key()
        event = await sign_event(self._signer, template.with_pubkey(pubkey))

        broadcast = await self._pool.send_event(event, relays)
        if broadcast.partial_failure:
            self._logger.warning("announcement_not_acked", event=event.id, relays=len(relays))
        else:
            self._logger.info(
                "announcement_published",
                event=event.id,
                acked=len(broadcast.acked),
                failed=len(broadcast.failed),
            )
        return event, broadcast

    async def publish(
        self,
        archive: str | Path,
        relays: Sequence[str],
        *,
        servers: Sequence[str] = (),
        thumb: str | None = None,
    ) -> PublishResult:
        """Upload ``archive`` and announce it on ``relays``.

        Raises:
            PackagingError: The archive cannot be read.
            NoServersConfiguredError: No servers given and none published.
            UploadFailedError: Every server rejected the upload.
        """
        path = Path(archive)
        try:
            payload = path.read_bytes()
        except OSError as e:
            raise PackagingError(f"Cannot read archive {path}: {e}") from e

        for url in relays:
            self._pool.add_relay(url)
        await self._pool.connect()

        targets = await self.resolve_servers(servers, relays)
        blob = await self.upload(payload, path.name, targets)
        event, broadcast = await self.announce(blob, path.name, relays, thumb=thumb)
        return PublishResult(event=event, blob=blob, broadcast=broadcast)


__all__ = ["PublishResult", "Publisher", "event_reference"]
