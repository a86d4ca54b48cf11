"""
Tool configuration loaded from an optional YAML file.

Every field has a default, so the CLI works without any file. ``--config``
points at a YAML document whose keys mirror
[ToolConfig][nostrpwa.core.config.ToolConfig]::

    connect_relays:
      - wss://relay.nsecbunker.com
    keys_env: NOSTR_NSEC
    encryption: nip44
    timeouts:
      handshake: 180
      upload: 600

Secrets never live in the file: the signing key is read from ``--nsec`` or
from the environment variable named by ``keys_env``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from nostrpwa.models.constants import PWA_ALT_TEXT, PWA_MIME_TYPE, Encryption
from nostrpwa.models.relay import Relay

from .exceptions import ConfigurationError


DEFAULT_CONNECT_RELAY = "wss://relay.nsecbunker.com"
ENV_NSEC = "NOSTR_NSEC"  # pragma: allowlist secret


def load_yaml(config_path: str | Path) -> dict[str, Any]:
    """Load a YAML file with ``yaml.safe_load``.

    Returns:
        The parsed mapping, or ``{}`` for an empty file.

    Raises:
        FileNotFoundError: If the file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        ValueError: If the top-level value is not a mapping.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping, got {type(data).__name__}")
    return data


class TimeoutsConfig(BaseModel):
    """Network timeouts in seconds.

    Attributes:
        connect: Relay WebSocket connection.
        handshake: Whole NIP-46 readiness wait, including the time the
            operator needs to approve the connection on the remote signer.
        rpc: A single NIP-46 request after the session is ready.
        fetch: Relay queries (profile, server list).
        http: NIP-05 lookups.
        upload: One Blossom upload.
    """

    connect: float = Field(default=10.0, gt=0.0, le=300.0)
    handshake: float = Field(default=120.0, gt=0.0, le=3600.0)
    rpc: float = Field(default=60.0, gt=0.0, le=3600.0)
    fetch: float = Field(default=10.0, gt=0.0, le=300.0)
    http: float = Field(default=10.0, gt=0.0, le=300.0)
    upload: float = Field(default=300.0, gt=0.0, le=3600.0)


class ToolConfig(BaseModel):
    """Top-level configuration shared by all commands.

    Attributes:
        connect_relays: Relays used for NIP-46 when the pairing string does
            not name any (the ``connect`` command and opaque tokens).
        keys_env: Environment variable consulted for the signing key when
            neither ``--nsec`` nor ``--connect`` is given.
        encryption: Payload encryption for outgoing NIP-46 requests.
        mime_type: ``m`` tag of the media announcement.
        alt_text: ``alt`` tag of the media announcement.
        max_response_size: Upper bound for NIP-05 and Blossom JSON bodies.
        timeouts: Network timeouts.
    """

    connect_relays: list[str] = Field(default_factory=lambda: [DEFAULT_CONNECT_RELAY])
    keys_env: str = Field(default=ENV_NSEC, min_length=1)
    encryption: Encryption = Field(default=Encryption.NIP44)
    mime_type: str = Field(default=PWA_MIME_TYPE, min_length=1)
    alt_text: str = Field(default=PWA_ALT_TEXT)
    max_response_size: int = Field(default=65_536, ge=1024, le=10_485_760)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)

    @field_validator("connect_relays")
    @classmethod
    def validate_relay_urls(cls, v: list[str]) -> list[str]:
        """Normalize relay URLs, rejecting anything that is not ws/wss."""
        urls: list[str] = []
        for raw in v:
            try:
                url = Relay(raw).url
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid relay URL '{raw}': {e}") from e
            if url not in urls:
                urls.append(url)
        return urls

    def env_secret_key(self) -> str | None:
        """Return the key stored in ``keys_env``, or ``None`` when unset or empty."""
        return os.getenv(self.keys_env) or None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolConfig:
        """Validate a parsed mapping.

        Raises:
            ConfigurationError: On any validation failure.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> ToolConfig:
        """Load and validate a YAML configuration file.

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid.
        """
        try:
            data = load_yaml(config_path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot load config {config_path}: {e}") from e
        return cls.from_dict(data)
