"""NIP-05 identifier lookup for remote signer discovery.

Resolves ``name@domain`` to the owner's public key and the relays the
owner's remote signer listens on, by fetching::

    https://<domain>/.well-known/nostr.json?name=<name>

The document's ``names`` map gives the public key. NIP-46 relays are read
from ``nip46[<pubkey>]`` when present, falling back to the general
``relays[<pubkey>]`` list.

See Also:
    [PairingSession][nostrpwa.nips.nip46.PairingSession]: Calls
        [resolve_identifier][nostrpwa.nips.nip05.resolve_identifier] for
        identity-shaped pairing strings.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

import aiohttp

from nostrpwa.core.exceptions import IdentityNotFoundError
from nostrpwa.models.relay import Relay
from nostrpwa.utils.http import read_bounded_json


logger = logging.getLogger(__name__)

_HEX_PUBKEY = re.compile(r"[0-9a-f]{64}")
_DEFAULT_MAX_SIZE = 65_536


@dataclass(frozen=True, slots=True)
class Nip05Identity:
    """A resolved NIP-05 identifier.

    Attributes:
        pubkey: Owner public key, 64 lowercase hex characters.
        relays: Normalized relay URLs advertised for the owner. May be empty.
    """

    pubkey: str
    relays: tuple[str, ...] = ()


def split_identifier(identifier: str) -> tuple[str, str]:
    """Split ``name@domain`` into its parts.

    A bare ``@domain`` uses the reserved name ``_``.

    Raises:
        IdentityNotFoundError: If there is no domain part.
    """
    name, _, domain = identifier.strip().rpartition("@")
    domain = domain.strip().lower()
    if not domain:
        raise IdentityNotFoundError(f"Invalid NIP-05 identifier: {identifier!r}")
    return (name.strip().lower() or "_"), domain


def well_known_url(name: str, domain: str) -> str:
    return f"https://{domain}/.well-known/nostr.json?name={name}"


def parse_nostr_json(data: Any, name: str) -> Nip05Identity | None:
    """Extract the identity for ``name`` from a ``nostr.json`` document.

    Returns ``None`` when the document has no valid public key for
    ``name``. Relay entries that are not valid relay URLs are dropped.
    """
    if not isinstance(data, dict):
        return None
    names = data.get("names")
    if not isinstance(names, dict):
        return None
    pubkey = names.get(name)
    if not isinstance(pubkey, str) or not _HEX_PUBKEY.fullmatch(pubkey.lower()):
        return None
    pubkey = pubkey.lower()

    candidates: Any = None
    for section in ("nip46", "relays"):
        mapping = data.get(section)
        if isinstance(mapping, dict) and mapping.get(pubkey):
            candidates = mapping[pubkey]
            break

    relays: list[str] = []
    if isinstance(candidates, list):
        for raw in candidates:
            try:
                url = Relay(str(raw)).url
            except ValueError:
                logger.debug("nip05_relay_skipped relay=%s", raw)
                continue
            if url not in relays:
                relays.append(url)

    return Nip05Identity(pubkey=pubkey, relays=tuple(relays))


async def resolve_identifier(
    identifier: str,
    *,
    timeout: float = 10.0,  # noqa: ASYNC109
    max_size: int = _DEFAULT_MAX_SIZE,
) -> Nip05Identity:
    """Resolve ``name@domain`` over HTTPS.

    Args:
        identifier: The NIP-05 identifier.
        timeout: Total request timeout in seconds.
        max_size: Maximum accepted body size in bytes.

    Raises:
        IdentityNotFoundError: If the lookup fails for any reason or the
            document has no public key for the name.
    """
    name, domain = split_identifier(identifier)
    url = well_known_url(name, domain)
    logger.debug("nip05_lookup_started identifier=%s url=%s", identifier, url)

    try:
        async with (
            aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session,
            session.get(url, headers={"Accept": "application/json"}) as resp,
        ):
            if resp.status != HTTPStatus.OK:
                raise ValueError(f"HTTP {resp.status}")
            data = await read_bounded_json(resp, max_size)
    except asyncio.CancelledError:
        raise
    except (OSError, TimeoutError, aiohttp.ClientError, ValueError) as e:
        # json.JSONDecodeError is a ValueError
        raise IdentityNotFoundError(f"Cannot resolve {identifier}: {e or type(e).__name__}") from e

    identity = parse_nostr_json(data, name)
    if identity is None:
        raise IdentityNotFoundError(f"No public key found for {identifier}")

    logger.debug(
        "nip05_lookup_succeeded identifier=%s pubkey=%s relays=%d",
        identifier,
        identity.pubkey,
        len(identity.relays),
    )
    return identity


__all__ = [
    "Nip05Identity",
    "parse_nostr_json",
    "resolve_identifier",
    "split_identifier",
    "well_known_url",
]
