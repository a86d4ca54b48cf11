"""
Unit tests for the nostr-pwa CLI (nostrpwa.__main__).

Tests:
- build_parser(): subcommands and options
- package command output
- connect command: pairing and printed key
- publish command: end to end with a fake relay pool
- Exit codes for handled errors
- --verbose before or after the subcommand
"""

from unittest.mock import AsyncMock, patch

import pytest
from nostr_sdk import Keys

from nostrpwa.__main__ import build_parser, load_config, main
from nostrpwa.core.config import ToolConfig
from nostrpwa.models import BlobDescriptor
from tests.conftest import VALID_HEX_KEY, VALID_NSEC_KEY, FakeBunkerPool


@pytest.fixture(autouse=True)
def _quiet(monkeypatch):
    """Keep the CLI from replacing the root logging handlers during tests."""
    monkeypatch.delenv("NOSTR_NSEC", raising=False)
    with patch("nostrpwa.__main__.setup_logging"):
        yield


@pytest.fixture
def fake_pool(bunker_keys):
    pool = FakeBunkerPool(bunker_keys)
    with patch("nostrpwa.__main__.RelayPool", lambda *args, **kwargs: pool):
        yield pool


@pytest.fixture
def archive(tmp_path):
    path = tmp_path / "app_1-0-0.pwa"
    path.write_bytes(b"PK\x03\x04")
    return path


# =============================================================================
# Parser Tests
# =============================================================================


class TestParser:
    def test_package_defaults(self):
        args = build_parser().parse_args(["package"])
        assert args.dir == "./dist"
        assert args.app_name is None

    def test_publish_requires_relays(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["publish", "app.pwa"])

    def test_publish_options(self):
        args = build_parser().parse_args(
            ["publish", "app.pwa", "-c", "bunker://x", "-s", "key", "-r", "wss://a,wss://b", "-b", "s1"]
        )
        assert args.connect == "bunker://x"
        assert args.connect_nsec == "key"
        assert args.relays == "wss://a,wss://b"
        assert args.servers == "s1"

    @pytest.mark.parametrize(
        "argv",
        [
            ["--verbose", "package", "./dist", "-n", "app", "-v", "1.0"],
            ["package", "./dist", "-n", "app", "-v", "1.0", "--verbose"],
            ["publish", "app.pwa", "-r", "wss://a", "--verbose"],
            ["connect", "alice@example.com", "--verbose"],
        ],
    )
    def test_verbose_either_side_of_command(self, argv):
        assert build_parser().parse_args(argv).verbose is True

    def test_verbose_default(self):
        assert build_parser().parse_args(["package"]).verbose is False

    def test_config_after_command(self):
        args = build_parser().parse_args(["package", "--config", "tool.yaml"])
        assert str(args.config) == "tool.yaml"

    async def test_verbose_after_command_enables_logging(self, tmp_path):
        dist = tmp_path / "dist"
        dist.mkdir()
        (dist / "index.html").write_text("<html></html>")
        with patch("nostrpwa.__main__.setup_logging") as setup:
            assert await main(["package", str(dist), "-n", "app", "-v", "1.0", "--verbose"]) == 0
        setup.assert_called_once_with(verbose=True)

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_load_config_default(self):
        assert load_config(None) == ToolConfig()


# =============================================================================
# package Tests
# =============================================================================


class TestPackageCommand:
    async def test_creates_archive(self, tmp_path, capsys):
        dist = tmp_path / "dist"
        dist.mkdir()
        (dist / "index.html").write_text("<html></html>")

        code = await main(["package", str(dist), "-n", "app", "-v", "1.2.3"])

        assert code == 0
        assert (tmp_path / "app_1-2-3.pwa").exists()
        assert capsys.readouterr().out.strip() == "Created app_1-2-3.pwa"

    async def test_missing_name(self, tmp_path):
        assert await main(["package", str(tmp_path)]) == 1


# =============================================================================
# connect Tests
# =============================================================================


class TestConnectCommand:
    async def test_prints_local_key(self, fake_pool, capsys):
        code = await main(["connect", fake_pool.bunker_pubkey])

        out = capsys.readouterr().out.splitlines()
        assert code == 0
        assert out[0] == "Successfully connected to remote signer"
        assert out[2] == out[4] == "=" * 64
        assert Keys.parse(out[3]).public_key().to_hex() == fake_pool.sent[0][0].pubkey
        assert fake_pool.unsubscribed
        assert fake_pool.sent[0][1] == ["wss://bunker.example.com"]

    async def test_failure_exit_code(self, bunker_keys, capsys):
        pool = FakeBunkerPool(bunker_keys, connect_error="denied")
        with patch("nostrpwa.__main__.RelayPool", lambda *args, **kwargs: pool):
            assert await main(["connect", pool.bunker_pubkey]) == 1
        assert "Successfully" not in capsys.readouterr().out


# =============================================================================
# publish Tests
# =============================================================================


class TestPublishCommand:
    async def test_with_nsec(self, fake_pool, archive, capsys):
        blob = BlobDescriptor(url="https://cdn.example.com/x.pwa", sha256="a" * 64, size=4)
        with patch("nostrpwa.services.publisher.upload_to_servers", AsyncMock(return_value=blob)):
            code = await main(
                [
                    "publish",
                    str(archive),
                    "--nsec",
                    VALID_NSEC_KEY,
                    "-r",
                    "wss://r1.example.com, wss://r2.example.com",
                    "-b",
                    "cdn.example.com",
                ]
            )

        out = capsys.readouterr().out.splitlines()
        assert code == 0
        npub = Keys.parse(VALID_HEX_KEY).public_key().to_bech32()
        assert out[0] == f"Signing as {npub}"
        assert out[1].startswith("Published ")
        assert " nostr:note1" in out[1]
        assert out[2:] == ["To relays:", "  wss://r1.example.com", "  wss://r2.example.com"]

    async def test_with_remote_signer(self, fake_pool, archive, capsys):
        blob = BlobDescriptor(url="https://cdn.example.com/x.pwa", sha256="a" * 64, size=4)
        with patch("nostrpwa.services.publisher.upload_to_servers", AsyncMock(return_value=blob)):
            code = await main(
                [
                    "publish",
                    str(archive),
                    "-c",
                    f"bunker://{fake_pool.bunker_pubkey}?relay=wss://bunker.example.com",
                    "-r",
                    "wss://r1.example.com",
                    "-b",
                    "cdn.example.com",
                ]
            )

        assert code == 0
        announcement = fake_pool.sent[-1][0]
        assert announcement.pubkey == fake_pool.user_pubkey
        assert fake_pool.sent[-1][1] == ["wss://r1.example.com"]

    async def test_token_pairs_over_publish_relays(self, fake_pool, archive):
        blob = BlobDescriptor(url="https://cdn.example.com/x.pwa", sha256="a" * 64, size=4)
        with patch("nostrpwa.services.publisher.upload_to_servers", AsyncMock(return_value=blob)):
            code = await main(
                [
                    "publish",
                    str(archive),
                    "-c",
                    fake_pool.bunker_pubkey,
                    "-r",
                    "wss://r1.example.com",
                    "-b",
                    "cdn.example.com",
                ]
            )

        assert code == 0
        assert fake_pool.sent[0][1] == ["wss://r1.example.com"]
        assert "wss://bunker.example.com" not in fake_pool.relays

    async def test_missing_archive_before_signing(self, fake_pool, tmp_path, capsys):
        code = await main(
            [
                "publish",
                str(tmp_path / "missing.pwa"),
                "-c",
                fake_pool.bunker_pubkey,
                "-r",
                "wss://r1.example.com",
            ]
        )

        assert code == 1
        assert fake_pool.sent == []
        assert fake_pool.requests == []
        assert "Signing as" not in capsys.readouterr().out

    async def test_no_credentials(self, fake_pool, archive):
        assert await main(["publish", str(archive), "-r", "wss://r1.example.com"]) == 1

    async def test_invalid_relays(self, fake_pool, archive):
        code = await main(["publish", str(archive), "--nsec", VALID_NSEC_KEY, "-r", "https://nope"])
        assert code == 1

    async def test_empty_relays(self, fake_pool, archive):
        assert await main(["publish", str(archive), "--nsec", VALID_NSEC_KEY, "-r", " , "]) == 1

    async def test_keyboard_interrupt(self, archive):
        with patch("nostrpwa.__main__.run_publish", AsyncMock(side_effect=KeyboardInterrupt)):
            assert await main(["publish", str(archive), "-r", "wss://r1.example.com"]) == 130
