"""Version resolution: version string → immutable BuildDescriptor."""

from __future__ import annotations

import re

from papermc_image.errors import ConfigurationError, VersionNotFoundError
from papermc_image.logging import get_logger
from papermc_image.remote.client import BuildsApi
from papermc_image.types import BuildDescriptor, BuildInfo

DEFAULT_PROJECT = "paper"

# Path-safe subset of what the API accepts ("1.21.4", "1.13-pre7", "23w13a").
VERSION_RE = re.compile(r"^[0-9A-Za-z][0-9A-Za-z._-]*$")

log = get_logger(__name__)


def check_version_spec(version_spec: str | None) -> str:
    """Return the stripped version, or raise ConfigurationError."""
    version = (version_spec or "").strip()
    if not version:
        raise ConfigurationError("a version is required (e.g. 1.21.4)")
    if not VERSION_RE.match(version):
        raise ConfigurationError(f"invalid version identifier: {version!r}")
    return version


def _selection_key(build: BuildInfo) -> tuple[int, float]:
    # Equal ids fall back to the most recently published entry.
    published = build.time.timestamp() if build.time else float("-inf")
    return build.build, published


def select_build(builds: list[BuildInfo]) -> BuildInfo:
    return max(builds, key=_selection_key)


def resolve(
    client: BuildsApi,
    version_spec: str | None,
    *,
    project: str = DEFAULT_PROJECT,
    channel: str | None = None,
) -> BuildDescriptor:
    """Resolve *version_spec* to the latest build published for it.

    The version is checked before the client is touched, so a bad input never
    reaches the network. When *channel* is given only builds on that channel
    are candidates.
    """
    version = check_version_spec(version_spec)
    if not project:
        raise ConfigurationError("a project name is required")

    log.info(f"Querying builds for {project} {version}")
    builds = client.query(project, version)
    if channel:
        builds = [b for b in builds if b.channel == channel]
    if not builds:
        suffix = f" on channel {channel!r}" if channel else ""
        raise VersionNotFoundError(f"no builds published for {project} {version}{suffix}")

    chosen = select_build(builds)
    log.info(
        f"Selected build {chosen.build} ({chosen.filename}) out of {len(builds)} candidate(s)"
    )
    return BuildDescriptor(
        project=project,
        version=version,
        build_id=chosen.build,
        artifact_filename=chosen.filename,
        checksum=chosen.sha256,
    )

