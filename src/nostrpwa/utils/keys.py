"""Nostr key handling and local signing.

Provides the key normalizer that turns operator input (64-char hex or
``nsec1`` bech32) into a canonical hex secret key, the
[Signer][nostrpwa.utils.keys.Signer] protocol shared by local and remote
signers, and [LocalSigner][nostrpwa.utils.keys.LocalSigner], which signs
with an in-memory ``nostr_sdk.Keys``.

Warning:
    Secret keys must never be logged. The only place a secret key is ever
    written out is the ``connect`` command, which prints the generated
    local NIP-46 key so the operator can reuse it with ``--connect-nsec``.

Examples:
    ```python
    normalize_private_key("nsec1vl029mgpspedva04g90vltkh6fvh240zqtv9k0t9af8935ke9laqsnlfe5")
    # '67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa'

    normalize_private_key("npub1...")   # None: not a secret key
    ```
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

from nostr_sdk import Keys, NostrSdkError, SecretKey

from nostrpwa.models.event import EventTemplate, SignedEvent, UnsignedEvent


_HEX_KEY = re.compile(r"[0-9a-fA-F]{64}")
_SECRET_KEY_PREFIX = "nsec"


def normalize_private_key(value: str | None) -> str | None:
    """Convert a user-supplied secret key to canonical lowercase hex.

    Accepts 64 hex characters in any case, or a bech32 string whose
    human-readable prefix is ``nsec``. Any other prefix (``npub``,
    ``note``, ...) and any decode failure yield ``None``; this function
    never raises, and callers decide whether absence is fatal.

    Args:
        value: Raw operator input.

    Returns:
        The 64-char lowercase hex secret key, or ``None``.
    """
    if not value:
        return None
    value = value.strip()

    if _HEX_KEY.fullmatch(value):
        return value.lower()

    hrp, sep, _ = value.lower().rpartition("1")
    if not sep or hrp != _SECRET_KEY_PREFIX:
        return None

    try:
        return SecretKey.parse(value).to_hex()
    except (NostrSdkError, ValueError, TypeError):
        return None


def keys_from_secret(value: str) -> Keys:
    """Build ``nostr_sdk.Keys`` from a normalized hex secret key."""
    return Keys.parse(value)


@runtime_checkable
class Signer(Protocol):
    """Anything that can identify its owner and sign events.

    Implemented by [LocalSigner][nostrpwa.utils.keys.LocalSigner] and
    [RemoteSigner][nostrpwa.nips.nip46.RemoteSigner].
    """

    async def get_public_key(self) -> str:
        """Return the owner's public key as 64 hex characters."""
        ...

    async def sign(self, event: UnsignedEvent) -> str:
        """Return the Schnorr signature (128 hex characters) over ``event.id``."""
        ...


async def sign_event(signer: Signer, event: UnsignedEvent) -> SignedEvent:
    """Sign ``event`` and assemble the [SignedEvent][nostrpwa.models.event.SignedEvent]."""
    return SignedEvent.from_unsigned(event, await signer.sign(event))


async def sign_template(signer: Signer, template: EventTemplate) -> SignedEvent:
    """Author ``template`` with the signer's public key, then sign it.

    This is the signing callback handed to the upload coordinator.
    """
    pubkey = await signer.get_public_key()
    return await sign_event(signer, template.with_pubkey(pubkey))


class LocalSigner:
    """Signer backed by a secret key held in memory.

    Always ready: construction does no network I/O. ``sign()`` raises
    ``ValueError`` for an event authored by another key.
    """

    def __init__(self, keys: Keys) -> None:
        self._keys = keys
        self._pubkey = keys.public_key().to_hex()

    @classmethod
    def from_secret(cls, secret_key: str) -> LocalSigner:
        """Build from a normalized hex secret key."""
        return cls(keys_from_secret(secret_key))

    @classmethod
    def generate(cls) -> LocalSigner:
        return cls(Keys.generate())

    @property
    def keys(self) -> Keys:
        return self._keys

    @property
    def secret_key_hex(self) -> str:
        return self._keys.secret_key().to_hex()

    async def get_public_key(self) -> str:
        return self._pubkey

    async def sign(self, event: UnsignedEvent) -> str:
        if event.pubkey != self._pubkey:
            raise ValueError(f"Cannot sign for {event.pubkey}: signer key is {self._pubkey}")
        return self._keys.sign_schnorr(bytes.fromhex(event.id))
