"""
Unit tests for services.signer module.

Tests:
- SignerResolver precedence: --nsec, --connect, environment
- Credential errors
- Remote resolution end to end against FakeBunkerPool, publish relays as fallback
- lookup_identity(): profile display names
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from nostr_sdk import Keys

from nostrpwa.core.exceptions import (
    InvalidCredentialError,
    MissingCredentialsError,
    MissingRelaysError,
)
from nostrpwa.models.constants import EventKind, SessionState
from nostrpwa.nips.nip05 import Nip05Identity
from nostrpwa.nips.nip46 import RemoteSigner
from nostrpwa.services.signer import SignerIdentity, SignerInputs, SignerResolver, lookup_identity
from nostrpwa.utils.keys import LocalSigner
from tests.conftest import VALID_HEX_KEY, VALID_NSEC_KEY, FakeBunkerPool, make_signed_event


@pytest.fixture(autouse=True)
def _no_env_key(monkeypatch):
    monkeypatch.delenv("NOSTR_NSEC", raising=False)


# =============================================================================
# Local Resolution Tests
# =============================================================================


class TestLocalResolution:
    async def test_nsec(self, bunker_keys, config):
        resolver = SignerResolver(FakeBunkerPool(bunker_keys), config)
        signer = await resolver.resolve(SignerInputs(nsec=VALID_NSEC_KEY))
        assert isinstance(signer, LocalSigner)
        assert signer.secret_key_hex == VALID_HEX_KEY
        assert resolver.session is None

    async def test_nsec_wins_over_connect(self, bunker_keys, config):
        pool = FakeBunkerPool(bunker_keys)
        signer = await SignerResolver(pool, config).resolve(
            SignerInputs(nsec=VALID_HEX_KEY, connect=pool.bunker_pubkey)
        )
        assert isinstance(signer, LocalSigner)
        assert pool.sent == []

    async def test_environment(self, bunker_keys, config, monkeypatch):
        monkeypatch.setenv("NOSTR_NSEC", VALID_NSEC_KEY)
        signer = await SignerResolver(FakeBunkerPool(bunker_keys), config).resolve(SignerInputs())
        assert isinstance(signer, LocalSigner)

    async def test_missing(self, bunker_keys, config):
        with pytest.raises(MissingCredentialsError, match="NOSTR_NSEC"):
            await SignerResolver(FakeBunkerPool(bunker_keys), config).resolve(SignerInputs())

    async def test_invalid_nsec(self, bunker_keys, config):
        npub = Keys.parse(VALID_HEX_KEY).public_key().to_bech32()
        with pytest.raises(InvalidCredentialError, match="--nsec"):
            await SignerResolver(FakeBunkerPool(bunker_keys), config).resolve(SignerInputs(nsec=npub))

    async def test_invalid_environment_key(self, bunker_keys, config, monkeypatch):
        monkeypatch.setenv("NOSTR_NSEC", "garbage")
        with pytest.raises(InvalidCredentialError, match="NOSTR_NSEC"):
            await SignerResolver(FakeBunkerPool(bunker_keys), config).resolve(SignerInputs())

    async def test_resolve_twice(self, bunker_keys, config):
        resolver = SignerResolver(FakeBunkerPool(bunker_keys), config)
        await resolver.resolve(SignerInputs(nsec=VALID_HEX_KEY))
        with pytest.raises(RuntimeError):
            await resolver.resolve(SignerInputs(nsec=VALID_HEX_KEY))


# =============================================================================
# Remote Resolution Tests
# =============================================================================


class TestRemoteResolution:
    async def test_identity_end_to_end(self, bunker_keys, config):
        user = Keys.generate()
        pool = FakeBunkerPool(bunker_keys, user)
        identity = Nip05Identity(pubkey=pool.bunker_pubkey, relays=("wss://nip46.example.com",))

        with patch("nostrpwa.nips.nip46.resolve_identifier", AsyncMock(return_value=identity)):
            async with SignerResolver(pool, config) as resolver:
                signer = await resolver.resolve(SignerInputs(connect="alice@example.com"))
                assert isinstance(signer, RemoteSigner)
                assert await signer.get_public_key() == user.public_key().to_hex()
                assert resolver.session.state is SessionState.READY

        assert pool.unsubscribed

    async def test_connect_nsec_reused(self, bunker_keys, config):
        pool = FakeBunkerPool(bunker_keys)
        resolver = SignerResolver(pool, config)
        await resolver.resolve(SignerInputs(connect=pool.bunker_pubkey, connect_nsec=VALID_NSEC_KEY))
        assert resolver.session.local_secret_hex == VALID_HEX_KEY

    async def test_invalid_connect_nsec(self, bunker_keys, config):
        pool = FakeBunkerPool(bunker_keys)
        with pytest.raises(InvalidCredentialError, match="--connect-nsec"):
            await SignerResolver(pool, config).resolve(
                SignerInputs(connect=pool.bunker_pubkey, connect_nsec="nope")
            )

    async def test_connect_relay_forwarded(self, bunker_keys, config):
        pool = FakeBunkerPool(bunker_keys)
        await SignerResolver(pool, config).resolve(
            SignerInputs(connect=pool.bunker_pubkey, connect_relay="wss://extra.example.com")
        )
        assert "wss://extra.example.com" in pool.sent[0][1]

    async def test_token_uses_publish_relays(self, bunker_keys, config):
        pool = FakeBunkerPool(bunker_keys)
        await SignerResolver(pool, config).resolve(
            SignerInputs(connect=pool.bunker_pubkey, relays=("wss://publish.example.com",))
        )
        assert pool.sent[0][1] == ["wss://publish.example.com"]

    async def test_token_without_publish_relays(self, bunker_keys, config):
        pool = FakeBunkerPool(bunker_keys)
        await SignerResolver(pool, config).resolve(SignerInputs(connect=pool.bunker_pubkey))
        assert pool.sent[0][1] == ["wss://bunker.example.com"]

    async def test_pairing_error_propagates(self, bunker_keys, config):
        pool = FakeBunkerPool(bunker_keys)
        with pytest.raises(MissingRelaysError):
            await SignerResolver(pool, config).resolve(
                SignerInputs(connect=f"bunker://{pool.bunker_pubkey}")
            )


# =============================================================================
# Identity Lookup Tests
# =============================================================================


class TestLookupIdentity:
    async def test_without_profile(self, bunker_keys, local_signer, keys):
        identity = await lookup_identity(local_signer, FakeBunkerPool(bunker_keys))
        assert identity == SignerIdentity(
            pubkey=keys.public_key().to_hex(), npub=keys.public_key().to_bech32()
        )
        assert identity.describe() == identity.npub

    @pytest.mark.parametrize(
        ("metadata", "expected"),
        [
            ({"display_name": "Alice", "name": "alice"}, "Alice"),
            ({"displayName": "Ally"}, "Ally"),
            ({"name": "alice"}, "alice"),
            ({"about": "no names"}, None),
        ],
    )
    async def test_display_name(self, bunker_keys, local_signer, metadata, expected):
        pool = FakeBunkerPool(bunker_keys)
        pool.fetch_result = await make_signed_event(
            local_signer, kind=EventKind.SET_METADATA, content=json.dumps(metadata)
        )
        identity = await lookup_identity(local_signer, pool)
        assert identity.display_name == expected
        if expected:
            assert identity.describe() == f"{expected} {identity.npub}"

    async def test_malformed_profile(self, bunker_keys, local_signer):
        pool = FakeBunkerPool(bunker_keys)
        pool.fetch_result = await make_signed_event(
            local_signer, kind=EventKind.SET_METADATA, content="{not json"
        )
        assert (await lookup_identity(local_signer, pool)).display_name is None
