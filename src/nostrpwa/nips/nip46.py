r"""NIP-46 remote signing: pairing strings, the RPC channel and the pairing session.

A [PairingSession][nostrpwa.nips.nip46.PairingSession] turns a pairing
string into a ready [RemoteSigner][nostrpwa.nips.nip46.RemoteSigner]. It
moves through these states, failing permanently on the first error:

```text
INIT -> RESOLVING_IDENTITY -> AWAITING_REMOTE_READY -> READY
  \______________\___________________\___________> FAILED
```

Pairing strings are classified in priority order, first match wins:

1. contains ``@``: a NIP-05 identifier, resolved over HTTPS;
2. starts with ``bunker://``: ``bunker://<pubkey>?relay=...&secret=...``;
3. anything else: a token ``<pubkey|npub>[#secret]`` sent to the
   session's fallback relays (the publish relays, or the configured
   connect relays).

RPC traffic is kind 24133 events p-tagged to the other party, carrying an
encrypted JSON payload (NIP-44 by default; NIP-04 replies, recognisable by
their ``?iv=`` suffix, are still accepted). Requests are signed with the
local ephemeral key; the remote signer answers with
``{"id", "result", "error"}``. A reply whose result is ``auth_url`` asks the
operator to approve the connection in a browser: the URL is logged and the
session keeps waiting.

Warning:
    The owner's public key is never trusted from the pairing string. It is
    always asked for with ``get_public_key`` once the remote signer has
    acknowledged the connection.

See Also:
    [SignerResolver][nostrpwa.services.signer.SignerResolver]: Creates the
        session for ``--connect``.
    [resolve_identifier][nostrpwa.nips.nip05.resolve_identifier]: NIP-05
        lookup used for identity-shaped pairing strings.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import secrets
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, urlsplit

from nostr_sdk import (
    Filter,
    Keys,
    Kind,
    Nip44Version,
    NostrSdkError,
    PublicKey,
    Timestamp,
    nip04_decrypt,
    nip04_encrypt,
    nip44_decrypt,
    nip44_encrypt,
)

from nostrpwa.core.config import ToolConfig
from nostrpwa.core.exceptions import (
    ConnectionFailedError,
    HandshakeTimeoutError,
    IdentityNotFoundError,
    MissingRelaysError,
    NostrPwaError,
    ProtocolError,
)
from nostrpwa.models.constants import Encryption, EventKind, PairingShape, SessionState
from nostrpwa.models.event import EventTemplate, SignedEvent
from nostrpwa.models.relay import Relay
from nostrpwa.utils.keys import LocalSigner, keys_from_secret, sign_template

from .nip05 import resolve_identifier


if TYPE_CHECKING:
    from nostrpwa.core.pool import RelayPool
    from nostrpwa.models.event import UnsignedEvent


logger = logging.getLogger(__name__)

BUNKER_SCHEME = "bunker://"
AUTH_URL_RESULT = "auth_url"
ACK_RESULT = "ack"

# Tolerated clock skew of a remote signer, in seconds
REPLY_LOOKBACK = 60

_HEX_PUBKEY = re.compile(r"[0-9a-f]{64}")
_NIP04_MARKER = "?iv="


# =============================================================================
# Pairing Strings
# =============================================================================


@dataclass(frozen=True, slots=True)
class PairingTarget:
    """Where and how to reach a remote signer.

    Attributes:
        shape: How the pairing string was interpreted.
        remote_pubkey: Hex public key the RPC requests are addressed to.
        relays: RPC relays named by the pairing string. Empty for tokens
            and for identities that advertise none.
        secret: Optional connection secret forwarded with ``connect``.
    """

    shape: PairingShape
    remote_pubkey: str
    relays: tuple[str, ...] = ()
    secret: str | None = None


def classify_pairing_string(value: str) -> PairingShape:
    """Return the shape of ``value``. ``@`` wins over ``bunker://``."""
    if "@" in value:
        return PairingShape.IDENTITY
    if value.startswith(BUNKER_SCHEME):
        return PairingShape.BUNKER_URI
    return PairingShape.TOKEN


def _parse_pubkey(value: str) -> str | None:
    value = value.strip()
    if _HEX_PUBKEY.fullmatch(value.lower()):
        return value.lower()
    try:
        return PublicKey.parse(value).to_hex()
    except (NostrSdkError, ValueError, TypeError):
        return None


def parse_bunker_uri(uri: str) -> PairingTarget:
    """Parse ``bunker://<pubkey>?relay=<url>&relay=<url>&secret=<s>``.

    The remote public key is the URI host or, when the host is empty, the
    first path segment.

    Raises:
        IdentityNotFoundError: If the URI names no valid public key.
        MissingRelaysError: If there is no usable ``relay`` parameter.
    """
    parts = urlsplit(uri)
    candidate = parts.netloc or parts.path.lstrip("/").split("/", 1)[0]
    remote_pubkey = _parse_pubkey(candidate)
    if remote_pubkey is None:
        raise IdentityNotFoundError(f"bunker URI has no valid public key: {candidate!r}")

    query = parse_qs(parts.query)
    relays: list[str] = []
    for raw in query.get("relay", []):
        try:
            url = Relay(raw).url
        except ValueError:
            logger.warning("bunker_relay_skipped relay=%s", raw)
            continue
        if url not in relays:
            relays.append(url)
    if not relays:
        raise MissingRelaysError("Missing relays in bunker URI")

    secret = (query.get("secret") or [None])[0] or None
    return PairingTarget(
        shape=PairingShape.BUNKER_URI,
        remote_pubkey=remote_pubkey,
        relays=tuple(relays),
        secret=secret,
    )


def parse_token(token: str) -> PairingTarget:
    """Parse an opaque ``<pubkey|npub>[#secret]`` token.

    Raises:
        IdentityNotFoundError: If the token does not start with a public key.
    """
    key, _, secret = token.strip().partition("#")
    remote_pubkey = _parse_pubkey(key)
    if remote_pubkey is None:
        raise IdentityNotFoundError(f"Pairing token does not name a public key: {key!r}")
    return PairingTarget(shape=PairingShape.TOKEN, remote_pubkey=remote_pubkey, secret=secret or None)


# =============================================================================
# RPC Channel
# =============================================================================


@dataclass(frozen=True, slots=True)
class RpcResponse:
    id: str
    result: str | None = None
    error: str | None = None


def _log_auth_url(url: str) -> None:
    logger.info("auth_url_received url=%s", url)


class NostrConnectRpc:
    """Request/response channel to one remote signer over kind 24133 events.

    Requests are serialized: the CLI never has more than one in flight.

    Args:
        pool: Shared relay pool.
        local_keys: Ephemeral client keys used to sign and encrypt requests.
        remote_pubkey: Hex public key of the remote signer.
        relays: Relays the requests are sent to.
        encryption: Payload encryption for outgoing requests.
        on_auth_url: Called with the URL of every ``auth_url`` reply.
    """

    def __init__(
        self,
        pool: RelayPool,
        local_keys: Keys,
        remote_pubkey: str,
        relays: Sequence[str],
        *,
        encryption: Encryption = Encryption.NIP44,
        on_auth_url: Callable[[str], None] = _log_auth_url,
    ) -> None:
        self._pool = pool
        self._keys = local_keys
        self._local = LocalSigner(local_keys)
        self._remote_pubkey = remote_pubkey
        self._remote = PublicKey.parse(remote_pubkey)
        self._relays = list(relays)
        self._encryption = encryption
        self._on_auth_url = on_auth_url
        self._queue: asyncio.Queue[SignedEvent] | None = None
        self._lock = asyncio.Lock()

    @property
    def remote_pubkey(self) -> str:
        return self._remote_pubkey

    @property
    def relays(self) -> list[str]:
        return list(self._relays)

    async def start(self) -> None:
        """Subscribe to replies addressed to the local key. Idempotent."""
        if self._queue is not None:
            return
        replies = (
            Filter()
            .kind(Kind(EventKind.NOSTR_CONNECT))
            .pubkey(self._keys.public_key())
            .since(Timestamp.from_secs(max(Timestamp.now().as_secs() - REPLY_LOOKBACK, 0)))
        )
        self._queue = await self._pool.subscribe(replies)

    async def close(self) -> None:
        if self._queue is not None:
            await self._pool.unsubscribe(self._queue)
            self._queue = None

    # -------------------------------------------------------------------------
    # Payload Encryption
    # -------------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        if self._encryption is Encryption.NIP04:
            return nip04_encrypt(self._keys.secret_key(), self._remote, plaintext)
        return nip44_encrypt(self._keys.secret_key(), self._remote, plaintext, Nip44Version.V2)

    def decrypt(self, payload: str) -> str:
        """Decrypt a reply, detecting NIP-04 payloads by their ``?iv=`` marker."""
        if _NIP04_MARKER in payload:
            return nip04_decrypt(self._keys.secret_key(), self._remote, payload)
        return nip44_decrypt(self._keys.secret_key(), self._remote, payload)

    def decode_reply(self, event: SignedEvent) -> RpcResponse | None:
        """Decrypt and parse a reply event, or ``None`` if it is not one of ours."""
        if event.pubkey != self._remote_pubkey:
            return None
        try:
            data = json.loads(self.decrypt(event.content))
        except (NostrSdkError, ValueError, TypeError) as e:
            logger.debug("rpc_reply_undecodable event=%s error=%s", event.id, e)
            return None
        if not isinstance(data, dict) or "id" not in data:
            return None

        result = data.get("result")
        error = data.get("error")
        return RpcResponse(
            id=str(data["id"]),
            result=None if result is None else str(result),
            error=str(error) if error else None,
        )

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def request(
        self,
        method: str,
        params: Sequence[str] = (),
        *,
        timeout: float | None = None,  # noqa: ASYNC109
    ) -> str:
        """Send one request and wait for its reply.

        Args:
            method: NIP-46 method name.
            params: String parameters.
            timeout: Seconds to wait for the reply, or ``None`` to wait
                until cancelled.

        Returns:
            The ``result`` field of the reply.

        Raises:
            ConnectionFailedError: If no relay accepted the request.
            ProtocolError: If the remote signer answered with an error.
            TimeoutError: If no reply arrived within ``timeout``.
        """
        await self.start()
        async with self._lock:
            request_id = secrets.token_hex(8)
            payload = json.dumps({"id": request_id, "method": method, "params": list(params)})
            template = EventTemplate(
                kind=EventKind.NOSTR_CONNECT,
                content=self.encrypt(payload),
                tags=[["p", self._remote_pubkey]],
            )
            event = await sign_template(self._local, template)

            sent = await self._pool.send_event(event, self._relays)
            if not sent.acked:
                raise ConnectionFailedError(f"No relay accepted the {method} request")
            logger.debug("rpc_request_sent method=%s id=%s relays=%d", method, request_id, len(sent.acked))

            async with asyncio.timeout(timeout):
                response = await self._wait_for(request_id)

        if response.error:
            raise ProtocolError(f"Remote signer rejected {method}: {response.error}")
        if response.result is None:
            raise ProtocolError(f"Remote signer sent an empty {method} reply")
        return response.result

    async def _wait_for(self, request_id: str) -> RpcResponse:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            response = self.decode_reply(event)
            if response is None or response.id != request_id:
                continue
            if response.result == AUTH_URL_RESULT:
                if response.error:
                    self._on_auth_url(response.error)
                continue
            return response


# =============================================================================
# Remote Signer
# =============================================================================


class RemoteSigner:
    """[Signer][nostrpwa.utils.keys.Signer] that delegates to a NIP-46 bunker.

    Every signature returned by the bunker is checked: the signed event
    must have the requested id and author and a valid Schnorr signature.
    """

    def __init__(self, rpc: NostrConnectRpc, pubkey: str, *, timeout: float = 60.0) -> None:  # noqa: ASYNC109
        self._rpc = rpc
        self._pubkey = pubkey
        self._timeout = timeout

    @property
    def rpc(self) -> NostrConnectRpc:
        return self._rpc

    async def get_public_key(self) -> str:
        return self._pubkey

    async def sign(self, event: UnsignedEvent) -> str:
        if event.pubkey != self._pubkey:
            raise ValueError(f"Cannot sign for {event.pubkey}: remote signer is {self._pubkey}")

        draft = {
            "pubkey": event.pubkey,
            "created_at": event.created_at,
            "kind": event.kind,
            "tags": [list(tag) for tag in event.tags],
            "content": event.content,
        }
        try:
            raw = await self._rpc.request(
                "sign_event", [json.dumps(draft, ensure_ascii=False)], timeout=self._timeout
            )
        except TimeoutError as e:
            raise ProtocolError(f"Remote signer did not answer sign_event within {self._timeout}s") from e

        try:
            signed = SignedEvent.from_json(raw)
        except ValueError as e:
            raise ProtocolError(f"Malformed sign_event reply: {e}") from e
        if signed.id != event.id or signed.pubkey != event.pubkey:
            raise ProtocolError(f"Remote signer signed a different event: {signed.id}")
        if not signed.verify():
            raise ProtocolError(f"Remote signer returned an invalid signature for {signed.id}")
        return signed.sig

    async def close(self) -> None:
        await self._rpc.close()


# =============================================================================
# Pairing Session
# =============================================================================


class PairingSession:
    """One attempt to pair with a remote signer. Never retried.

    Args:
        pool: Shared relay pool; the session registers its relays there.
        pairing: The pairing string.
        config: Tool configuration (connect relays, encryption, timeouts).
        local_secret: Normalized hex secret for the local key. A fresh key
            is generated when omitted.
        extra_relay: Relay added to the RPC relay set, registered before
            any network operation.
        fallback_relays: RPC relays for pairing strings that name none.
            Defaults to the configured connect relays.

    Examples:
        ```python
        session = PairingSession(pool, "alice@example.com", config=config)
        signer = await session.establish()
        print(session.local_secret_hex)   # reuse with --connect-nsec
        ```
    """

    def __init__(
        self,
        pool: RelayPool,
        pairing: str,
        *,
        config: ToolConfig | None = None,
        local_secret: str | None = None,
        extra_relay: str | None = None,
        fallback_relays: Sequence[str] | None = None,
    ) -> None:
        self._pool = pool
        self._pairing = pairing.strip()
        self._config = config or ToolConfig()
        self._local_secret = local_secret
        self._extra_relay = extra_relay
        self._fallback_relays = list(fallback_relays or ())
        self._state = SessionState.INIT
        self._keys: Keys | None = None
        self._target: PairingTarget | None = None
        self._signer: RemoteSigner | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def target(self) -> PairingTarget | None:
        return self._target

    @property
    def local_keys(self) -> Keys:
        if self._keys is None:
            raise RuntimeError("Session has not started")
        return self._keys

    @property
    def local_secret_hex(self) -> str:
        return self.local_keys.secret_key().to_hex()

    @property
    def signer(self) -> RemoteSigner | None:
        return self._signer

    async def establish(self) -> RemoteSigner:
        """Run the session to ``READY`` and return the signer.

        Raises:
            IdentityNotFoundError: The pairing string names no reachable key.
            MissingRelaysError: A ``bunker://`` URI has no relays.
            ConnectionFailedError: No relay connected, or the signer refused.
            HandshakeTimeoutError: No acknowledgement within the handshake
                timeout.
            RuntimeError: If called twice.
        """
        if self._state is not SessionState.INIT:
            raise RuntimeError(f"Pairing session already {self._state}")

        try:
            if self._extra_relay:
                self._extra_relay = self._pool.add_relay(self._extra_relay)
            if self._keys is None:
                self._keys = keys_from_secret(self._local_secret) if self._local_secret else Keys.generate()

            self._transition(SessionState.RESOLVING_IDENTITY)
            self._target = await self._resolve()

            self._transition(SessionState.AWAITING_REMOTE_READY)
            self._signer = await self._await_ready(self._target)
        except NostrPwaError as e:
            self._transition(SessionState.FAILED, error=str(e))
            raise

        self._transition(SessionState.READY)
        return self._signer

    def _transition(self, state: SessionState, **kwargs: Any) -> None:
        logger.debug(
            "pairing_state from=%s to=%s%s",
            self._state,
            state,
            "".join(f" {k}={v}" for k, v in kwargs.items()),
        )
        self._state = state

    async def _resolve(self) -> PairingTarget:
        shape = classify_pairing_string(self._pairing)
        logger.debug("pairing_classified shape=%s", shape)

        if shape is PairingShape.IDENTITY:
            identity = await resolve_identifier(
                self._pairing,
                timeout=self._config.timeouts.http,
                max_size=self._config.max_response_size,
            )
            return PairingTarget(
                shape=shape, remote_pubkey=identity.pubkey, relays=identity.relays
            )
        if shape is PairingShape.BUNKER_URI:
            return parse_bunker_uri(self._pairing)
        return parse_token(self._pairing)

    def _rpc_relays(self, target: PairingTarget) -> list[str]:
        relays = list(target.relays) or self._fallback_relays or list(self._config.connect_relays)
        if self._extra_relay and self._extra_relay not in relays:
            relays.append(self._extra_relay)
        return relays

    async def _await_ready(self, target: PairingTarget) -> RemoteSigner:
        relays = [self._pool.add_relay(url) for url in self._rpc_relays(target)]
        connected = await self._pool.connect()
        reachable = [url for url in relays if url in connected]
        if not reachable:
            raise ConnectionFailedError(f"Could not connect to any RPC relay: {', '.join(relays)}")

        rpc = NostrConnectRpc(
            self._pool,
            self.local_keys,
            target.remote_pubkey,
            reachable,
            encryption=self._config.encryption,
        )
        params = [target.remote_pubkey]
        if target.secret:
            params.append(target.secret)

        handshake = self._config.timeouts.handshake
        try:
            async with asyncio.timeout(handshake):
                result = await rpc.request("connect", params)
                if result not in (ACK_RESULT, target.secret):
                    raise ConnectionFailedError(f"Unexpected connect reply: {result!r}")
                pubkey = (await rpc.request("get_public_key")).strip().lower()
        except TimeoutError as e:
            await rpc.close()
            raise HandshakeTimeoutError(
                f"Remote signer did not respond within {handshake:g}s"
            ) from e
        except ProtocolError as e:
            await rpc.close()
            raise ConnectionFailedError(str(e)) from e
        except ConnectionFailedError:
            await rpc.close()
            raise

        if not _HEX_PUBKEY.fullmatch(pubkey):
            await rpc.close()
            raise ConnectionFailedError(f"Remote signer returned an invalid public key: {pubkey!r}")

        logger.info("remote_signer_ready pubkey=%s relays=%d", pubkey, len(reachable))
        return RemoteSigner(rpc, pubkey, timeout=self._config.timeouts.rpc)


__all__ = [
    "ACK_RESULT",
    "AUTH_URL_RESULT",
    "BUNKER_SCHEME",
    "REPLY_LOOKBACK",
    "NostrConnectRpc",
    "PairingSession",
    "PairingTarget",
    "RemoteSigner",
    "RpcResponse",
    "classify_pairing_string",
    "parse_bunker_uri",
    "parse_token",
]
