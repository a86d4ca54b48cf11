"""Command-level workflows built on the core, nips and utils layers.

Attributes:
    SignerResolver: Resolves ``--nsec`` / ``--connect`` / environment
        credentials into exactly one signer.
    Publisher: Uploads an archive to Blossom and broadcasts its kind 1063
        announcement.
    package_directory: Zips a build directory into a ``.pwa`` archive.
"""

from .packager import AppInfo, archive_name, package_directory, read_manifest, resolve_app_info
from .publisher import PublishResult, Publisher, event_reference
from .signer import SignerIdentity, SignerInputs, SignerResolver, lookup_identity


__all__ = [
    "AppInfo",
    "PublishResult",
    "Publisher",
    "SignerIdentity",
    "SignerInputs",
    "SignerResolver",
    "archive_name",
    "event_reference",
    "lookup_identity",
    "package_directory",
    "read_manifest",
    "resolve_app_info",
]
