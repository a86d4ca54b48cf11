r"""nostr-pwa -- package Progressive Web Apps and publish them over Nostr.

The tool zips a built web app into a ``.pwa`` archive, uploads it to
Blossom servers and announces it with a signed NIP-94 (kind 1063) event.
Signing happens with a local key or through a NIP-46 remote signer.

Imports flow strictly downward:

```text
              services         Signer resolution, publishing, packaging
             /   |   \
          core  nips  utils    Pool/config/logging, protocols, keys/http
             \   |   /
              models           Pure frozen dataclasses (zero I/O)
```

Attributes:
    models: Events, blob descriptors, relay URLs, constants.
    core: Relay pool, configuration, exceptions, structured logging.
    nips: NIP-05, NIP-46 and Blossom protocol logic.
    utils: Key normalization, local signing, bounded HTTP reads.
    services: Signer resolver, publication pipeline, packager.

Note:
    Top-level imports (``from nostrpwa import Publisher``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nostr-pwa")

__all__ = [
    "BlobDescriptor",
    "Logger",
    "NostrPwaError",
    "PairingSession",
    "Publisher",
    "RelayPool",
    "SignedEvent",
    "SignerResolver",
    "ToolConfig",
    "normalize_private_key",
    "package_directory",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Logger": ("nostrpwa.core", "Logger"),
    "NostrPwaError": ("nostrpwa.core", "NostrPwaError"),
    "RelayPool": ("nostrpwa.core", "RelayPool"),
    "ToolConfig": ("nostrpwa.core", "ToolConfig"),
    "BlobDescriptor": ("nostrpwa.models", "BlobDescriptor"),
    "SignedEvent": ("nostrpwa.models", "SignedEvent"),
    "PairingSession": ("nostrpwa.nips", "PairingSession"),
    "normalize_private_key": ("nostrpwa.utils", "normalize_private_key"),
    "Publisher": ("nostrpwa.services", "Publisher"),
    "SignerResolver": ("nostrpwa.services", "SignerResolver"),
    "package_directory": ("nostrpwa.services", "package_directory"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nostrpwa' has no attribute {name!r}")
