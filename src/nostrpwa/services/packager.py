"""Packaging of a built web app directory into a ``.pwa`` archive.

The archive is a plain deflated zip of the directory contents (not the
directory itself), named ``{name}_{version}.pwa`` with dots in the version
replaced by dashes, e.g. ``my-app_1-2-0.pwa``. Hidden entries at the top
level of the directory are skipped, the same as a shell ``*`` glob. It is
written next to the packaged directory and replaces any previous archive
of the same name.
"""

from __future__ import annotations

import json
import zipfile
from dataclasses import dataclass
from pathlib import Path

from nostrpwa.core.exceptions import ConfigurationError, PackagingError
from nostrpwa.core.logger import Logger
from nostrpwa.models.constants import PWA_EXTENSION


_logger = Logger("package")


@dataclass(frozen=True, slots=True)
class AppInfo:
    """Name and version that determine the archive filename."""

    name: str
    version: str

    @property
    def filename(self) -> str:
        return archive_name(self.name, self.version)


def archive_name(name: str, version: str) -> str:
    return f"{name}_{version.replace('.', '-')}{PWA_EXTENSION}"


def read_manifest(path: str | Path) -> AppInfo:
    """Read ``name`` and ``version`` from a ``package.json``-style manifest.

    Raises:
        PackagingError: If the file cannot be read, is not a JSON object,
            or lacks either field.
    """
    manifest = Path(path)
    _logger.debug("manifest_reading", path=manifest)
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise PackagingError(f"Cannot read {manifest}: {e}") from e
    if not isinstance(data, dict):
        raise PackagingError(f"{manifest} must contain a JSON object")

    name, version = data.get("name"), data.get("version")
    if not isinstance(name, str) or not name or not isinstance(version, str) or not version:
        raise PackagingError(f"{manifest} must define string 'name' and 'version' fields")
    return AppInfo(name=name, version=version)


def resolve_app_info(
    name: str | None = None,
    version: str | None = None,
    manifest: str | Path | None = None,
) -> AppInfo:
    """Pick the app name and version: the manifest wins over explicit values.

    Raises:
        ConfigurationError: If there is no manifest and either value is missing.
        PackagingError: If the manifest is unreadable.
    """
    if manifest:
        return read_manifest(manifest)
    if name and version:
        return AppInfo(name=name, version=version)
    raise ConfigurationError("Missing --app-name and --app-version, or --package")


def iter_archive_files(directory: Path) -> list[tuple[Path, str]]:
    """List ``(path, arcname)`` pairs for every file to archive, sorted by arcname."""
    files: list[tuple[Path, str]] = []
    for entry in directory.iterdir():
        if entry.name.startswith("."):
            continue
        candidates = [entry] if entry.is_file() else sorted(entry.rglob("*"))
        for path in candidates:
            if path.is_file():
                files.append((path, path.relative_to(directory).as_posix()))
    return sorted(files, key=lambda item: item[1])


def package_directory(
    directory: str | Path,
    app: AppInfo,
    out_dir: str | Path | None = None,
) -> Path:
    """Zip ``directory`` into ``out_dir/{app.filename}``.

    Args:
        directory: The build output to package.
        app: Name and version for the archive filename.
        out_dir: Destination directory; defaults to the parent of
            ``directory``.

    Returns:
        Path of the written archive.

    Raises:
        PackagingError: If ``directory`` does not exist, is empty, or the
            archive cannot be written.
    """
    source = Path(directory)
    if not source.is_dir():
        raise PackagingError(f"Not a directory: {source}")

    destination = (Path(out_dir) if out_dir is not None else source.resolve().parent) / app.filename
    files = iter_archive_files(source)
    if not files:
        raise PackagingError(f"Nothing to package in {source}")

    _logger.debug("packaging_started", source=source, output=destination, files=len(files))
    try:
        if destination.exists():
            _logger.debug("archive_replaced", output=destination)
            destination.unlink()
        with zipfile.ZipFile(destination, "w", zipfile.ZIP_DEFLATED) as archive:
            for path, arcname in files:
                archive.write(path, arcname)
    except OSError as e:
        raise PackagingError(f"Cannot write {destination}: {e}") from e

    _logger.info("archive_created", output=destination, files=len(files))
    return destination


__all__ = [
    "AppInfo",
    "archive_name",
    "iter_archive_files",
    "package_directory",
    "read_manifest",
    "resolve_app_info",
]
