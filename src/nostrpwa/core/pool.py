"""
Shared relay connection pool built on ``nostr_sdk.Client``.

One [RelayPool][nostrpwa.core.pool.RelayPool] is created per CLI
invocation and handed explicitly to everything that talks to relays: the
NIP-46 session, the profile and server-list lookups, and the final
broadcast. Relays can be registered at any time; they are dialed on the
next [connect()][nostrpwa.core.pool.RelayPool.connect].

Broadcasting never raises for individual relays. Each relay that rejects
the event or cannot be reached is recorded in
[BroadcastResult][nostrpwa.core.pool.BroadcastResult] and logged at
WARNING, and the caller decides whether zero acknowledgements is fatal.

Examples:
    ```python
    async with RelayPool(["wss://relay.example.com"], timeouts=config.timeouts) as pool:
        result = await pool.send_event(event, ["wss://relay.example.com"])
        print(result.acked)
    ```

See Also:
    [nostrpwa.nips.nip46.NostrConnectRpc][]: Uses
        [subscribe()][nostrpwa.core.pool.RelayPool.subscribe] and
        [send_event()][nostrpwa.core.pool.RelayPool.send_event] for RPC traffic.
    [nostrpwa.services.publisher.Publisher][]: Broadcasts the media
        announcement through this pool.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from nostr_sdk import ClientBuilder, HandleNotification, NostrSdkError, RelayUrl, uniffi_set_event_loop

from nostrpwa.models.event import SignedEvent
from nostrpwa.models.relay import Relay

from .config import TimeoutsConfig
from .exceptions import ConfigurationError
from .logger import Logger


if TYPE_CHECKING:
    from nostr_sdk import Client, Filter
    from nostr_sdk import Event as NostrEvent


@dataclass(frozen=True, slots=True)
class BroadcastResult:
    """Per-relay outcome of sending one event.

    Attributes:
        event_id: Id of the event that was sent.
        acked: Relays that accepted the event, in the order they were asked.
        failed: Relay URL to error message for every relay that did not.
    """

    event_id: str
    acked: tuple[str, ...] = ()
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def partial_failure(self) -> bool:
        """``True`` when no relay acknowledged the event."""
        return not self.acked


class _NotificationHandler(HandleNotification):
    """Routes live events from ``handle_notifications`` back into the pool."""

    def __init__(self, pool: RelayPool) -> None:
        super().__init__()
        self._pool = pool

    async def handle_msg(self, relay_url: Any, msg: Any) -> None:
        pass

    async def handle(self, relay_url: Any, subscription_id: str, event: NostrEvent) -> None:
        self._pool._dispatch(subscription_id, event)


class RelayPool:
    """Connection manager for every relay the tool talks to.

    Args:
        relays: Relay URLs to register up front.
        timeouts: Connection and fetch timeouts.
        client: Pre-built ``nostr_sdk.Client``. Built lazily on the first
            [connect()][nostrpwa.core.pool.RelayPool.connect] when omitted.

    Raises:
        ConfigurationError: From the constructor or
            [add_relay()][nostrpwa.core.pool.RelayPool.add_relay] if a URL is
            not a valid ``ws``/``wss`` relay.
    """

    def __init__(
        self,
        relays: Iterable[str] = (),
        *,
        timeouts: TimeoutsConfig | None = None,
        client: Client | None = None,
    ) -> None:
        self._timeouts = timeouts or TimeoutsConfig()
        self._client = client
        self._relay_urls: dict[str, RelayUrl] = {}
        self._pending: list[str] = []
        self._connected: list[str] = []
        self._queues: dict[str, asyncio.Queue[SignedEvent]] = {}
        self._seen: dict[str, set[str]] = {}
        self._notifications: asyncio.Task[None] | None = None
        self._logger = Logger("pool")

        for url in relays:
            self.add_relay(url)

    # -------------------------------------------------------------------------
    # Relay Registry
    # -------------------------------------------------------------------------

    @property
    def relays(self) -> list[str]:
        """Every registered relay URL, connected or not."""
        return list(self._relay_urls)

    @property
    def connected(self) -> list[str]:
        """Relays that completed the WebSocket handshake."""
        return list(self._connected)

    def add_relay(self, url: str) -> str:
        """Register a relay, returning its normalized URL.

        Registering a URL twice is a no-op. The relay is dialed on the next
        [connect()][nostrpwa.core.pool.RelayPool.connect].
        """
        try:
            normalized = Relay(url).url
            relay_url = RelayUrl.parse(normalized)
        except (ValueError, TypeError, NostrSdkError) as e:
            raise ConfigurationError(f"Invalid relay URL '{url}': {e}") from e

        if normalized not in self._relay_urls:
            self._relay_urls[normalized] = relay_url
            self._pending.append(normalized)
        return normalized

    def _ensure_client(self) -> Client:
        if self._client is None:
            self._client = ClientBuilder().build()
        return self._client

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    async def connect(self) -> list[str]:
        """Dial every relay registered since the last call.

        Failures are logged and skipped. Returns every connected relay,
        including ones connected earlier.
        """
        if not self._pending:
            return self.connected

        client = self._ensure_client()
        pending, self._pending = self._pending, []
        for url in pending:
            await client.add_relay(self._relay_urls[url])

        output = await client.try_connect(timedelta(seconds=self._timeouts.connect))
        for url in pending:
            relay_url = self._relay_urls[url]
            if relay_url in output.success:
                self._connected.append(url)
                self._logger.debug("relay_connected", relay=url)
            else:
                error = output.failed.get(relay_url, "Unknown error")
                self._logger.warning("relay_connect_failed", relay=url, error=error)

        return self.connected

    async def close(self) -> None:
        """Stop the notification loop and shut the client down. Idempotent."""
        if self._notifications is not None:
            self._notifications.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._notifications
            self._notifications = None

        if self._client is not None:
            # nostr-sdk Rust FFI can raise arbitrary exception types during shutdown.
            with contextlib.suppress(Exception):
                await self._client.shutdown()
            self._client = None

        self._connected.clear()
        self._pending = list(self._relay_urls)
        self._queues.clear()
        self._seen.clear()

    async def __aenter__(self) -> RelayPool:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def fetch_events(
        self, event_filter: Filter, relays: Sequence[str] | None = None
    ) -> list[SignedEvent]:
        """Query relays and return valid, signature-checked events.

        Args:
            event_filter: The query.
            relays: Restrict the query to these relays (default: every
                connected relay). Relays that are not connected are skipped.

        Returns an empty list when no relay is connected or the query fails.
        """
        targets = self.connected
        if relays is not None:
            wanted = {Relay(url).url for url in relays}
            targets = [url for url in targets if url in wanted]
        if not targets:
            return []

        client = self._ensure_client()
        try:
            events = await client.fetch_events_from(
                [self._relay_urls[url] for url in targets],
                event_filter,
                timedelta(seconds=self._timeouts.fetch),
            )
        except (OSError, TimeoutError, NostrSdkError) as e:
            self._logger.warning("fetch_failed", error=str(e))
            return []

        result: list[SignedEvent] = []
        for evt in events.to_vec():
            try:
                event = SignedEvent.from_nostr(evt)
            except ValueError as e:
                self._logger.debug("fetch_event_invalid", error=str(e))
                continue
            if event.verify():
                result.append(event)
        return result

    async def fetch_latest(
        self, event_filter: Filter, relays: Sequence[str] | None = None
    ) -> SignedEvent | None:
        """Return the newest matching event, or ``None``."""
        events = await self.fetch_events(event_filter, relays)
        if not events:
            return None
        return max(events, key=lambda e: e.created_at)

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def send_event(
        self, event: SignedEvent, relays: Sequence[str] | None = None
    ) -> BroadcastResult:
        """Send ``event`` to ``relays`` (default: every connected relay).

        Relays that are not registered yet are added and dialed first. The
        event is never sent anywhere outside ``relays``.
        """
        targets = [self.add_relay(url) for url in relays] if relays is not None else self.connected
        if any(url not in self._connected for url in targets):
            await self.connect()

        reachable = [url for url in targets if url in self._connected]
        failed = {url: "not connected" for url in targets if url not in self._connected}
        if not reachable:
            self._log_failures(event.id, failed)
            return BroadcastResult(event_id=event.id, failed=failed)

        client = self._ensure_client()
        try:
            output = await client.send_event_to(
                [self._relay_urls[url] for url in reachable], event.to_nostr()
            )
        except (OSError, TimeoutError, NostrSdkError) as e:
            failed.update({url: str(e) for url in reachable})
            self._log_failures(event.id, failed)
            return BroadcastResult(event_id=event.id, failed=failed)

        acked: list[str] = []
        for url in reachable:
            relay_url = self._relay_urls[url]
            if relay_url in output.success:
                acked.append(url)
            else:
                failed[url] = output.failed.get(relay_url, "Unknown error")

        self._log_failures(event.id, failed)
        return BroadcastResult(event_id=event.id, acked=tuple(acked), failed=failed)

    def _log_failures(self, event_id: str, failed: dict[str, str]) -> None:
        for url, error in failed.items():
            self._logger.warning("send_failed", relay=url, event=event_id, error=error)

    # -------------------------------------------------------------------------
    # Live Subscriptions
    # -------------------------------------------------------------------------

    async def subscribe(self, event_filter: Filter) -> asyncio.Queue[SignedEvent]:
        """Open a live subscription on connected relays.

        Matching events are delivered once each (duplicates from several
        relays are dropped) to the returned queue until
        [close()][nostrpwa.core.pool.RelayPool.close].
        """
        client = self._ensure_client()
        output = await client.subscribe(event_filter, None)
        subscription_id = str(output.id)
        queue: asyncio.Queue[SignedEvent] = asyncio.Queue()
        self._queues[subscription_id] = queue
        self._seen[subscription_id] = set()

        if self._notifications is None:
            # Required for UniFFI async callbacks into this event loop
            uniffi_set_event_loop(asyncio.get_running_loop())
            handler = _NotificationHandler(self)
            self._notifications = asyncio.create_task(client.handle_notifications(handler))

        self._logger.debug("subscription_opened", subscription=subscription_id)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[SignedEvent]) -> None:
        """Close the subscription feeding ``queue``. Unknown queues are ignored."""
        for subscription_id, candidate in list(self._queues.items()):
            if candidate is not queue:
                continue
            del self._queues[subscription_id]
            self._seen.pop(subscription_id, None)
            if self._client is not None:
                with contextlib.suppress(Exception):
                    await self._client.unsubscribe(subscription_id)
            self._logger.debug("subscription_closed", subscription=subscription_id)

    def _dispatch(self, subscription_id: str, event: NostrEvent) -> None:
        queue = self._queues.get(subscription_id)
        if queue is None:
            return
        try:
            signed = SignedEvent.from_nostr(event)
        except ValueError as e:
            self._logger.debug("subscription_event_invalid", error=str(e))
            return

        seen = self._seen[subscription_id]
        if signed.id in seen:
            return
        seen.add(signed.id)
        queue.put_nowait(signed)
