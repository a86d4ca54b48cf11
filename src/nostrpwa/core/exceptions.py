"""nostr-pwa exception hierarchy.

Every failure the CLI can report maps to one typed exception so that the
command boundary in [__main__][nostrpwa.__main__] can print a clear message
and exit non-zero, while per-endpoint failures (one upload server, one
relay) are caught at their call site and only logged.

Exception hierarchy:

```text
NostrPwaError (base -- never raised directly)
├── ConfigurationError          -- bad config file, flags, relay URLs
├── PackagingError              -- archive could not be built
├── CredentialError
│   ├── MissingCredentialsError -- neither --nsec nor --connect given
│   └── InvalidCredentialError  -- key could not be normalized
├── PairingError                -- NIP-46 session failed (state FAILED)
│   ├── IdentityNotFoundError   -- NIP-05 lookup yielded no pubkey
│   ├── MissingRelaysError      -- bunker:// URI without relay params
│   ├── ConnectionFailedError   -- no relay reachable / remote refused
│   └── HandshakeTimeoutError   -- remote signer never became ready
├── ProtocolError               -- malformed RPC reply, bad signature
└── UploadError
    ├── NoServersConfiguredError -- no --servers and no kind 10063 list
    └── UploadFailedError        -- every server failed
```

Note:
    Zero relays acknowledging a published event is *not* an exception. It
    is reported through
    [BroadcastResult.partial_failure][nostrpwa.core.pool.BroadcastResult].
"""

from __future__ import annotations


class NostrPwaError(Exception):
    """Base exception for all nostr-pwa errors.

    Never raised directly -- always use a specific subclass.
    """


class ConfigurationError(NostrPwaError):
    """Invalid or missing configuration (YAML file, CLI flags, relay URLs)."""


class PackagingError(NostrPwaError):
    """The build directory could not be packaged into a ``.pwa`` archive."""


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class CredentialError(NostrPwaError):
    """Base for signer credential errors. Always fatal for the invocation."""


class MissingCredentialsError(CredentialError):
    """Neither a secret key nor a pairing string was supplied."""


class InvalidCredentialError(CredentialError):
    """A supplied secret key is neither 64-char hex nor a valid ``nsec``."""


# ---------------------------------------------------------------------------
# Pairing (NIP-46)
# ---------------------------------------------------------------------------


class PairingError(NostrPwaError):
    """Base for remote pairing failures.

    Raising any subclass moves the
    [PairingSession][nostrpwa.nips.nip46.PairingSession] to ``FAILED``.
    There is no retry within a single invocation.
    """


class IdentityNotFoundError(PairingError):
    """A NIP-05 identifier did not resolve to a public key."""


class MissingRelaysError(PairingError):
    """A ``bunker://`` URI carried no ``relay`` query parameter."""


class ConnectionFailedError(PairingError):
    """No RPC relay could be reached, or the remote signer refused."""


class HandshakeTimeoutError(PairingError):
    """The remote signer did not acknowledge readiness in time."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ProtocolError(NostrPwaError):
    """A remote party answered with malformed or inconsistent data.

    Raised for RPC replies that cannot be parsed, signed events whose id
    does not match the request, and signatures that fail verification.
    """


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------


class UploadError(NostrPwaError):
    """Base for Blossom upload failures."""


class NoServersConfiguredError(UploadError):
    """No servers were passed and the user has no kind 10063 server list."""


class UploadFailedError(UploadError):
    """Every candidate server rejected the upload."""
