"""
Validated relay URL.

Parses and normalizes WebSocket relay URLs (``ws://`` or ``wss://``) with
RFC 3986 validation. Unlike a crawler, a publishing tool must accept
whatever relay the operator points it at, including ``ws://localhost``
during development, so the scheme is kept as given and local addresses are
allowed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import UnpermittedComponentError, ValidationError
from rfc3986.validators import Validator


@dataclass(frozen=True, slots=True)
class Relay:
    """Immutable, normalized relay URL.

    Attributes:
        url: Normalized URL (lowercase scheme and host, default port and
            trailing slash removed).
        scheme: ``ws`` or ``wss``.
        host: Hostname or IP address (brackets stripped for IPv6).
        port: Explicit non-default port, or ``None``.
        path: Path component, or ``None``.

    Raises:
        ValueError: If the URL is malformed, has another scheme, or carries
            a query string or fragment.

    Examples:
        ```python
        Relay("WSS://Relay.Example.com:443/").url   # 'wss://relay.example.com'
        Relay("ws://localhost:7777").port          # 7777
        ```
    """

    raw_url: str = field(repr=False)

    url: str = field(init=False)
    scheme: str = field(init=False)
    host: str = field(init=False)
    port: int | None = field(init=False)
    path: str | None = field(init=False)

    _DEFAULT_PORTS: ClassVar[dict[str, int]] = {"ws": 80, "wss": 443}

    def __post_init__(self) -> None:
        if "\x00" in self.raw_url:
            raise ValueError("Relay URL contains null bytes")

        uri = uri_reference(self.raw_url.strip()).normalize()
        validator = (
            Validator()
            .require_presence_of("scheme", "host")
            .allow_schemes("ws", "wss")
            .check_validity_of("scheme", "host", "port", "path")
        )
        try:
            validator.validate(uri)
        except UnpermittedComponentError:
            raise ValueError(f"Invalid relay scheme, must be ws or wss: {self.raw_url}") from None
        except ValidationError as e:
            raise ValueError(f"Invalid relay URL {self.raw_url}: {e}") from None

        if uri.query:
            raise ValueError(f"Relay URL must not contain a query string: ?{uri.query}")
        if uri.fragment:
            raise ValueError(f"Relay URL must not contain a fragment: #{uri.fragment}")

        scheme = uri.scheme
        host = uri.host.strip("[]")
        port = int(uri.port) if uri.port else None
        if port == self._DEFAULT_PORTS[scheme]:
            port = None

        path = uri.path or ""
        while "//" in path:
            path = path.replace("//", "/")
        path = path.rstrip("/") or None

        formatted_host = f"[{host}]" if ":" in host else host
        port_suffix = f":{port}" if port else ""

        object.__setattr__(self, "url", f"{scheme}://{formatted_host}{port_suffix}{path or ''}")
        object.__setattr__(self, "scheme", scheme)
        object.__setattr__(self, "host", host)
        object.__setattr__(self, "port", port)
        object.__setattr__(self, "path", path)

    def __str__(self) -> str:
        return self.url


def parse_relay_list(value: str | None) -> list[str]:
    """Split a comma separated relay list, normalizing and de-duplicating.

    Blank entries are skipped. Order is preserved.

    Raises:
        ValueError: If any entry is not a valid relay URL.
    """
    if not value:
        return []
    relays: list[str] = []
    for raw in value.split(","):
        if not raw.strip():
            continue
        url = Relay(raw).url
        if url not in relays:
            relays.append(url)
    return relays
