"""Artifact fetcher: download, verify and atomically promote the server jar.

Behavior:
- Write the payload to a staging file inside the destination directory
- Verify the published SHA-256 (when known) and the jar structure
- Set restrictive permissions on the staged file, then `os.replace` it onto the
  final name, so readers see either the previous artifact or the new one
- Skip the download when the final artifact already matches the checksum
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from papermc_image.errors import ConfigurationError, DiskError
from papermc_image.logging import get_logger
from papermc_image.remote.client import BuildsApi, artifact_url
from papermc_image.security.archive import verify_jar
from papermc_image.signing.checks import normalize_digest, sha256, verify_sha256
from papermc_image.types import ArtifactFile, BuildDescriptor

ARTIFACT_NAME = "papermc-server.jar"
ARTIFACT_MODE = 0o550  # owner/group read+execute, no world access
STAGING_PREFIX = ".papermc-staging-"

log = get_logger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def check_artifact_name(name: str) -> str:
    """The artifact must land directly inside the destination directory."""
    if not name or name in {".", ".."} or Path(name).name != name or "\\" in name:
        raise ConfigurationError(f"invalid artifact name: {name!r}")
    return name


def _check_destination(dest: Path) -> None:
    if not dest.is_dir():
        raise DiskError(f"Destination directory does not exist: {dest}")
    if not os.access(dest, os.W_OK | os.X_OK):
        raise DiskError(f"Destination directory is not writable: {dest}")


def _sweep_staging(dest: Path) -> None:
    """Remove staging files left behind by an interrupted run."""
    for leftover in dest.glob(f"{STAGING_PREFIX}*"):
        log.warning(f"Removing stale staging file {leftover.name}")
        leftover.unlink(missing_ok=True)


def _already_present(final: Path, descriptor: BuildDescriptor) -> str | None:
    """Return the digest of *final* if it is the artifact *descriptor* names."""
    if descriptor.checksum is None or not final.is_file():
        return None
    try:
        digest = sha256(final)
    except OSError as e:
        raise DiskError(f"Cannot read existing {final}: {e}") from e
    if digest != normalize_digest(descriptor.checksum):
        log.info(f"Existing {final.name} does not match build {descriptor.build_id}; replacing")
        return None
    return digest


def _write_staging(dest: Path, payload: bytes) -> Path:
    try:
        fd, name = tempfile.mkstemp(prefix=STAGING_PREFIX, suffix=".part", dir=dest)
    except OSError as e:
        raise DiskError(f"Cannot create staging file in {dest}: {e}") from e
    staging = Path(name)
    try:
        with os.fdopen(fd, "wb") as out:
            out.write(payload)
            out.flush()
            os.fsync(out.fileno())
    except OSError as e:
        staging.unlink(missing_ok=True)
        raise DiskError(f"Cannot write staging file {staging.name}: {e}") from e
    return staging


def _promote(staging: Path, final: Path) -> None:
    try:
        os.chmod(staging, ARTIFACT_MODE)
        os.replace(staging, final)
    except OSError as e:
        raise DiskError(f"Cannot move {staging.name} to {final}: {e}") from e


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def fetch(
    client: BuildsApi,
    descriptor: BuildDescriptor,
    destination_dir: Path,
    *,
    artifact_name: str = ARTIFACT_NAME,
) -> ArtifactFile:
    """Fetch the artifact named by *descriptor* into *destination_dir*.

    Parameters
    ----------
    client: BuildsApi
        Source of the payload; only `api_url` and `download()` are used.
    descriptor: BuildDescriptor
        A resolved build. Read only.
    destination_dir: Path
        Existing, writable directory that receives `artifact_name`.
    artifact_name: str
        Final file name inside *destination_dir*.

    Returns
    -------
    ArtifactFile
        Final path, size and digest of the promoted artifact.
    """
    check_artifact_name(artifact_name)
    dest = Path(destination_dir)
    _check_destination(dest)
    _sweep_staging(dest)
    final = dest / artifact_name

    digest = _already_present(final, descriptor)
    if digest is not None:
        try:
            os.chmod(final, ARTIFACT_MODE)
        except OSError as e:
            raise DiskError(f"Cannot set permissions on {final}: {e}") from e
        log.info(f"{final} already holds build {descriptor.build_id}; skipping download")
        return ArtifactFile(path=final, size=final.stat().st_size, sha256=digest, skipped=True)

    url = artifact_url(client.api_url, descriptor)
    log.info(f"Downloading {descriptor.artifact_filename} from {url}")
    payload = client.download(url)

    staging = _write_staging(dest, payload)
    try:
        if descriptor.checksum is not None:
            digest = verify_sha256(staging, descriptor.checksum)
        else:
            log.warning(f"No published checksum for build {descriptor.build_id}")
            digest = sha256(staging)
        verify_jar(staging)
        _promote(staging, final)
    except BaseException:
        # Cleanup staging on any failure, interrupts included
        staging.unlink(missing_ok=True)
        raise

    log.info(f"Promoted {descriptor.artifact_filename} to {final} ({len(payload)} bytes)")
    return ArtifactFile(path=final, size=len(payload), sha256=digest)

