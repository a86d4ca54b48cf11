"""Infrastructure shared by every command.

Attributes:
    RelayPool: The one relay connection pool of an invocation. See
        [RelayPool][nostrpwa.core.pool.RelayPool].
    ToolConfig: Pydantic configuration loaded from optional YAML.
    Logger: Structured key=value logger.
    NostrPwaError: Root of the exception hierarchy; the CLI maps it to
        exit code 1.
"""

from .config import TimeoutsConfig, ToolConfig, load_yaml
from .exceptions import (
    ConfigurationError,
    ConnectionFailedError,
    CredentialError,
    HandshakeTimeoutError,
    IdentityNotFoundError,
    InvalidCredentialError,
    MissingCredentialsError,
    MissingRelaysError,
    NoServersConfiguredError,
    NostrPwaError,
    PackagingError,
    PairingError,
    ProtocolError,
    UploadError,
    UploadFailedError,
)
from .logger import Logger, StructuredFormatter, setup_logging
from .pool import BroadcastResult, RelayPool


__all__ = [
    "BroadcastResult",
    "ConfigurationError",
    "ConnectionFailedError",
    "CredentialError",
    "HandshakeTimeoutError",
    "IdentityNotFoundError",
    "InvalidCredentialError",
    "Logger",
    "MissingCredentialsError",
    "MissingRelaysError",
    "NoServersConfiguredError",
    "NostrPwaError",
    "PackagingError",
    "PairingError",
    "ProtocolError",
    "RelayPool",
    "StructuredFormatter",
    "TimeoutsConfig",
    "ToolConfig",
    "UploadError",
    "UploadFailedError",
    "load_yaml",
    "setup_logging",
]
