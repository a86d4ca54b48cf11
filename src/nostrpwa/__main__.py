"""CLI entry point for nostr-pwa.

Examples:
    ```bash
    nostr-pwa package ./dist -p package.json
    nostr-pwa connect alice@example.com
    nostr-pwa publish my-app_1-0-0.pwa --connect bunker://... -r wss://relay.example.com
    nostr-pwa publish my-app_1-0-0.pwa --nsec nsec1... -r wss://relay.example.com -b cdn.example.com
    ```

Exit codes: ``0`` on success, ``1`` on any handled error, ``130`` when
interrupted.
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

from nostrpwa.core.config import ToolConfig
from nostrpwa.core.exceptions import ConfigurationError, NostrPwaError, PackagingError
from nostrpwa.core.logger import Logger, setup_logging
from nostrpwa.core.pool import RelayPool
from nostrpwa.models.relay import parse_relay_list
from nostrpwa.nips.nip46 import PairingSession
from nostrpwa.services.packager import package_directory, resolve_app_info
from nostrpwa.services.publisher import Publisher
from nostrpwa.services.signer import SignerInputs, SignerResolver, lookup_identity


logger = Logger("cli")

KEY_RULE = "=" * 64


def _comma_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with its three subcommands."""
    parser = argparse.ArgumentParser(
        prog="nostr-pwa",
        description="Package Progressive Web Apps and publish them over Nostr",
    )
    parser.add_argument("--verbose", action="store_true", help="Run with verbose logging")
    parser.add_argument("--config", type=Path, help="YAML configuration file")

    # Subcommand copies must not reset options given before the subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--verbose", action="store_true", default=argparse.SUPPRESS, help="Run with verbose logging"
    )
    common.add_argument(
        "--config", type=Path, default=argparse.SUPPRESS, help="YAML configuration file"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    connect = commands.add_parser("connect", parents=[common], help="Connect to a remote signer")
    connect.add_argument("pairing", help="name@domain, bunker:// URI or connection token")
    connect.add_argument("--relay", help="Extra relay for the remote signer channel")

    package = commands.add_parser("package", parents=[common], help="Package a folder into a .pwa")
    package.add_argument("dir", nargs="?", default="./dist", help="Directory to pack (default: ./dist)")
    package.add_argument("-n", "--app-name", help="The name of the app")
    package.add_argument("-v", "--app-version", help="The version of the app")
    package.add_argument("-p", "--package", help="Get the name and version from a package.json")

    publish = commands.add_parser("publish", parents=[common], help="Upload a .pwa and publish its announcement")
    publish.add_argument("pwa", type=Path, help="The .pwa archive to publish")
    publish.add_argument("--nsec", help="Secret key to sign with (hex or nsec)")
    publish.add_argument("-c", "--connect", help="Pairing string of a remote signer")
    publish.add_argument("-s", "--connect-nsec", help="Local key printed by the connect command")
    publish.add_argument("--connect-relay", help="Extra relay for the remote signer channel")
    publish.add_argument("--thumb", help="Thumbnail URL")
    publish.add_argument("-r", "--relays", required=True, help="Comma separated relays to publish to")
    publish.add_argument("-b", "--servers", help="Comma separated Blossom servers")

    return parser


def load_config(path: Path | None) -> ToolConfig:
    return ToolConfig.from_yaml(path) if path is not None else ToolConfig()


async def run_connect(args: argparse.Namespace, config: ToolConfig) -> int:
    """Pair with a remote signer and print the local key for ``--connect-nsec``."""
    async with RelayPool(timeouts=config.timeouts) as pool:
        session = PairingSession(pool, args.pairing, config=config, extra_relay=args.relay)
        signer = await session.establish()
        try:
            print("Successfully connected to remote signer")
            print("Save the signer key for use later in the publish command:")
            print(KEY_RULE)
            print(session.local_secret_hex)
            print(KEY_RULE)
        finally:
            await signer.close()
    return 0


def run_package(args: argparse.Namespace) -> int:
    app = resolve_app_info(args.app_name, args.app_version, args.package)
    output = package_directory(args.dir, app)
    print("Created", output.name)
    return 0


async def run_publish(args: argparse.Namespace, config: ToolConfig) -> int:
    """Resolve the signer, upload the archive and broadcast its announcement."""
    try:
        relays = parse_relay_list(args.relays)
    except ValueError as e:
        raise ConfigurationError(f"Invalid --relays: {e}") from e
    if not relays:
        raise ConfigurationError("--relays must name at least one relay")
    if not args.pwa.is_file():
        raise PackagingError(f"Cannot read archive {args.pwa}: not a file")

    inputs = SignerInputs(
        nsec=args.nsec,
        connect=args.connect,
        connect_nsec=args.connect_nsec,
        connect_relay=args.connect_relay,
        relays=tuple(relays),
    )

    async with RelayPool(relays, timeouts=config.timeouts) as pool:
        async with SignerResolver(pool, config) as resolver:
            signer = await resolver.resolve(inputs)
            identity = await lookup_identity(signer, pool, relays)
            print("Signing as", identity.describe())

            publisher = Publisher(pool, signer, config)
            result = await publisher.publish(
                args.pwa, relays, servers=_comma_list(args.servers), thumb=args.thumb
            )

    print("Published", result.event.id, result.reference)
    print("To relays:")
    if result.broadcast.acked:
        for url in result.broadcast.acked:
            print("  " + url)
    else:
        print("  (none)")
    return 0


async def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point: parse args, load config and run the subcommand."""
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = load_config(args.config)
        if args.command == "connect":
            return await run_connect(args, config)
        if args.command == "package":
            return run_package(args)
        return await run_publish(args, config)
    except NostrPwaError as e:
        logger.error(f"{args.command}_failed", error=str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli()
