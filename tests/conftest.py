"""
Pytest configuration and shared fixtures for nostr-pwa tests.

Provides:
- Test key constants and Keys/LocalSigner fixtures
- A small ToolConfig with short timeouts
- FakeBunkerPool: a RelayPool stand-in that answers NIP-46 requests the way
  a remote signer would, using real NIP-44 encryption and Schnorr signatures
- Helpers to build signed events
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

import pytest
from nostr_sdk import Keys, Nip44Version, PublicKey, nip44_decrypt, nip44_encrypt

from nostrpwa.core.config import TimeoutsConfig, ToolConfig
from nostrpwa.core.pool import BroadcastResult
from nostrpwa.models.event import EventTemplate, SignedEvent, UnsignedEvent
from nostrpwa.models.relay import Relay
from nostrpwa.utils.keys import LocalSigner, sign_template


# ============================================================================
# Test Constants
# ============================================================================

# Valid secp256k1 test keys (DO NOT USE IN PRODUCTION)
VALID_HEX_KEY = (
    "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret
)
VALID_NSEC_KEY = (
    "nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5"  # pragma: allowlist secret
)


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Keys and Config
# ============================================================================


@pytest.fixture
def keys() -> Keys:
    return Keys.parse(VALID_HEX_KEY)


@pytest.fixture
def local_signer(keys: Keys) -> LocalSigner:
    return LocalSigner(keys)


@pytest.fixture
def config() -> ToolConfig:
    """Configuration with short timeouts so failing waits end quickly."""
    return ToolConfig(
        connect_relays=["wss://bunker.example.com"],
        timeouts=TimeoutsConfig(connect=1.0, handshake=2.0, rpc=2.0, fetch=1.0, http=1.0, upload=5.0),
    )


async def make_signed_event(
    signer: LocalSigner,
    kind: int = 1,
    content: str = "",
    tags: list[list[str]] | None = None,
    created_at: int = 1_700_000_000,
) -> SignedEvent:
    """Sign a template with ``signer``."""
    return await sign_template(
        signer, EventTemplate(kind=kind, content=content, tags=tags or [], created_at=created_at)
    )


# ============================================================================
# Fake Remote Signer
# ============================================================================


class FakeBunkerPool:
    """RelayPool stand-in whose relays are served by a NIP-46 remote signer.

    Requests sent with ``send_event`` are decrypted with the bunker key and
    answered on the subscription queue, exactly as a real bunker would
    answer over a relay.

    Args:
        bunker_keys: Keys of the remote signer (the RPC peer).
        user_keys: Keys the bunker signs with and reports from
            ``get_public_key``. Defaults to ``bunker_keys``.
        connect_result: Result of the ``connect`` reply.
        connect_error: If set, ``connect`` is answered with this error.
        auth_url: If set, ``connect`` is first answered with an
            ``auth_url`` challenge carrying this URL.
        silent: Never reply.
        reachable: Relays that connect successfully (default: all).
        clock_skew: Seconds the bunker clock runs behind; replies are
            backdated by this much.
    """

    def __init__(
        self,
        bunker_keys: Keys,
        user_keys: Keys | None = None,
        *,
        connect_result: str = "ack",
        connect_error: str | None = None,
        auth_url: str | None = None,
        silent: bool = False,
        reachable: list[str] | None = None,
        clock_skew: int = 0,
    ) -> None:
        self.bunker_keys = bunker_keys
        self.user_keys = user_keys or bunker_keys
        self.connect_result = connect_result
        self.connect_error = connect_error
        self.auth_url = auth_url
        self.silent = silent
        self.reachable = reachable
        self.clock_skew = clock_skew
        self.relays: list[str] = []
        self.requests: list[dict[str, Any]] = []
        self.sent: list[tuple[SignedEvent, list[str]]] = []
        self.queue: asyncio.Queue[SignedEvent] = asyncio.Queue()
        self.unsubscribed = False
        self.fetch_result: SignedEvent | None = None
        self.since: int | None = None

    @property
    def bunker_pubkey(self) -> str:
        return self.bunker_keys.public_key().to_hex()

    @property
    def user_pubkey(self) -> str:
        return self.user_keys.public_key().to_hex()

    def add_relay(self, url: str) -> str:
        normalized = Relay(url).url
        if normalized not in self.relays:
            self.relays.append(normalized)
        return normalized

    async def connect(self) -> list[str]:
        if self.reachable is None:
            return list(self.relays)
        return [url for url in self.relays if url in self.reachable]

    async def subscribe(self, event_filter: Any) -> asyncio.Queue[SignedEvent]:
        self.since = json.loads(event_filter.as_json()).get("since")
        return self.queue

    async def unsubscribe(self, queue: asyncio.Queue[SignedEvent]) -> None:
        self.unsubscribed = True

    async def fetch_latest(self, event_filter: Any, relays: Any = None) -> SignedEvent | None:
        return self.fetch_result

    async def send_event(self, event: SignedEvent, relays: list[str] | None = None) -> BroadcastResult:
        targets = list(relays or self.relays)
        self.sent.append((event, targets))
        if event.kind == 24_133 and event.tags[0][1] == self.bunker_pubkey:
            plaintext = nip44_decrypt(
                self.bunker_keys.secret_key(), PublicKey.parse(event.pubkey), event.content
            )
            request = json.loads(plaintext)
            self.requests.append(request)
            if not self.silent:
                for reply in self._replies(request):
                    await self._push(event.pubkey, reply)
        return BroadcastResult(event_id=event.id, acked=tuple(targets))

    def _replies(self, request: dict[str, Any]) -> list[dict[str, Any]]:
        rid = request["id"]
        method = request["method"]
        if method == "connect":
            replies = []
            if self.auth_url:
                replies.append({"id": rid, "result": "auth_url", "error": self.auth_url})
            if self.connect_error:
                replies.append({"id": rid, "result": None, "error": self.connect_error})
            else:
                replies.append({"id": rid, "result": self.connect_result})
            return replies
        if method == "get_public_key":
            return [{"id": rid, "result": self.user_pubkey}]
        if method == "sign_event":
            return [{"id": rid, "result": self._sign(json.loads(request["params"][0]))}]
        return [{"id": rid, "error": f"unsupported method {method}"}]

    def _sign(self, draft: dict[str, Any]) -> str:
        unsigned = UnsignedEvent(
            pubkey=self.user_pubkey,
            created_at=draft["created_at"],
            kind=draft["kind"],
            tags=draft["tags"],
            content=draft["content"],
        )
        sig = self.user_keys.sign_schnorr(bytes.fromhex(unsigned.id))
        return SignedEvent.from_unsigned(unsigned, sig).to_json()

    async def _push(self, client_pubkey: str, reply: dict[str, Any]) -> None:
        ciphertext = nip44_encrypt(
            self.bunker_keys.secret_key(),
            PublicKey.parse(client_pubkey),
            json.dumps(reply),
            Nip44Version.V2,
        )
        event = await sign_template(
            LocalSigner(self.bunker_keys),
            EventTemplate(
                kind=24_133,
                content=ciphertext,
                tags=[["p", client_pubkey]],
                created_at=int(time.time()) - self.clock_skew,
            ),
        )
        # A relay only delivers what matches the subscription
        if self.since is not None and event.created_at < self.since:
            return
        self.queue.put_nowait(event)

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> FakeBunkerPool:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()


@pytest.fixture
def bunker_keys() -> Keys:
    return Keys.generate()
