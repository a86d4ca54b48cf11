"""Signer resolution: turn CLI credentials into exactly one active signer.

Precedence:

1. ``--nsec``: a [LocalSigner][nostrpwa.utils.keys.LocalSigner], ready
   immediately with no network I/O.
2. ``--connect``: a NIP-46 [PairingSession][nostrpwa.nips.nip46.PairingSession]
   run to completion, yielding a
   [RemoteSigner][nostrpwa.nips.nip46.RemoteSigner].
3. Neither: the key in the environment variable named by
   ``ToolConfig.keys_env`` (``NOSTR_NSEC`` by default).

No credential at all raises
[MissingCredentialsError][nostrpwa.core.exceptions.MissingCredentialsError];
an unparseable key raises
[InvalidCredentialError][nostrpwa.core.exceptions.InvalidCredentialError].

Examples:
    ```python
    inputs = SignerInputs(connect="bunker://...?relay=wss://relay.example.com")
    async with SignerResolver(pool, config) as resolver:
        signer = await resolver.resolve(inputs)
        identity = await lookup_identity(signer, pool)
    ```
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nostr_sdk import Filter, Kind, PublicKey

from nostrpwa.core.config import ToolConfig
from nostrpwa.core.exceptions import InvalidCredentialError, MissingCredentialsError
from nostrpwa.core.logger import Logger
from nostrpwa.models.constants import EventKind
from nostrpwa.nips.nip46 import PairingSession, RemoteSigner
from nostrpwa.utils.keys import LocalSigner, Signer, normalize_private_key


if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from nostrpwa.core.pool import RelayPool


@dataclass(frozen=True, slots=True)
class SignerInputs:
    """Credential flags as given on the command line.

    Attributes:
        nsec: Direct secret key (hex or ``nsec``).
        connect: NIP-46 pairing string.
        connect_nsec: Secret key to reuse as the local NIP-46 key.
        connect_relay: Extra relay for the NIP-46 channel.
        relays: Publish relays, used for NIP-46 when the pairing string
            names no relays of its own.
    """

    nsec: str | None = None
    connect: str | None = None
    connect_nsec: str | None = None
    connect_relay: str | None = None
    relays: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SignerIdentity:
    """Who the active signer signs as.

    Attributes:
        pubkey: Hex public key.
        npub: Bech32 public key.
        display_name: From the kind 0 profile, or ``None`` when no profile
            was found.
    """

    pubkey: str
    npub: str
    display_name: str | None = None

    def describe(self) -> str:
        return f"{self.display_name} {self.npub}" if self.display_name else self.npub


class SignerResolver:
    """Produces the single signer of an invocation and owns its lifecycle.

    Remote signers are closed on exit; the relay pool itself belongs to the
    caller.
    """

    def __init__(self, pool: RelayPool, config: ToolConfig | None = None) -> None:
        self._pool = pool
        self._config = config or ToolConfig()
        self._signer: Signer | None = None
        self._session: PairingSession | None = None
        self._logger = Logger("signer")

    @property
    def signer(self) -> Signer | None:
        return self._signer

    @property
    def session(self) -> PairingSession | None:
        """The pairing session, when the signer is remote."""
        return self._session

    async def resolve(self, inputs: SignerInputs) -> Signer:
        """Resolve ``inputs`` to a ready signer.

        Raises:
            InvalidCredentialError: A supplied key does not parse.
            MissingCredentialsError: No key and no pairing string.
            PairingError: Any failure of the NIP-46 session.
            RuntimeError: If called twice.
        """
        if self._signer is not None:
            raise RuntimeError("Signer already resolved")

        if inputs.nsec:
            self._signer = self._local(inputs.nsec, "--nsec")
        elif inputs.connect:
            self._signer = await self._remote(inputs)
        else:
            env_key = self._config.env_secret_key()
            if env_key is None:
                raise MissingCredentialsError(
                    f"No signer: pass --nsec or --connect, or set {self._config.keys_env}"
                )
            self._signer = self._local(env_key, self._config.keys_env)

        return self._signer

    def _local(self, value: str, source: str) -> LocalSigner:
        secret = normalize_private_key(value)
        if secret is None:
            raise InvalidCredentialError(f"Invalid secret key in {source}")
        signer = LocalSigner.from_secret(secret)
        self._logger.debug("local_signer_ready", source=source)
        return signer

    async def _remote(self, inputs: SignerInputs) -> RemoteSigner:
        local_secret = None
        if inputs.connect_nsec:
            local_secret = normalize_private_key(inputs.connect_nsec)
            if local_secret is None:
                raise InvalidCredentialError("Invalid secret key in --connect-nsec")

        self._session = PairingSession(
            self._pool,
            inputs.connect or "",
            config=self._config,
            local_secret=local_secret,
            extra_relay=inputs.connect_relay,
            fallback_relays=inputs.relays,
        )
        return await self._session.establish()

    async def aclose(self) -> None:
        if isinstance(self._signer, RemoteSigner):
            await self._signer.close()

    async def __aenter__(self) -> SignerResolver:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()


async def lookup_identity(
    signer: Signer, pool: RelayPool, relays: Sequence[str] | None = None
) -> SignerIdentity:
    """Return the signer's public key and, if the relays know it, its display name.

    A missing or malformed kind 0 profile is not an error.
    """
    pubkey = await signer.get_public_key()
    public_key = PublicKey.parse(pubkey)

    display_name = None
    profile = await pool.fetch_latest(
        Filter().kind(Kind(EventKind.SET_METADATA)).author(public_key).limit(1), relays
    )
    if profile is not None:
        try:
            metadata = json.loads(profile.content)
        except ValueError:
            metadata = None
        if isinstance(metadata, dict):
            name = metadata.get("display_name") or metadata.get("displayName") or metadata.get("name")
            display_name = str(name) if name else None

    return SignerIdentity(pubkey=pubkey, npub=public_key.to_bech32(), display_name=display_name)


__all__ = ["SignerIdentity", "SignerInputs", "SignerResolver", "lookup_identity"]
