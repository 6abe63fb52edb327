"""Pipeline orchestration: resolve → fetch, aborting on the first error."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from papermc_image.installer.fetch import ARTIFACT_NAME, fetch
from papermc_image.logging import get_logger
from papermc_image.remote.client import (
    DEFAULT_API_URL,
    DEFAULT_TIMEOUT,
    BuildsApi,
    PaperApiClient,
)
from papermc_image.resolve.builds import DEFAULT_PROJECT, check_version_spec, resolve
from papermc_image.types import ArtifactFile, BuildDescriptor, RetryPolicy

DEFAULT_DEST = Path("/build")

log = get_logger(__name__)


@dataclass
class BuildContext:
    version: str
    dest: Path = DEFAULT_DEST
    project: str = DEFAULT_PROJECT
    channel: str | None = None
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    artifact_name: str = ARTIFACT_NAME


@dataclass
class PipelineResult:
    descriptor: BuildDescriptor
    artifact: ArtifactFile


def make_client(ctx: BuildContext) -> PaperApiClient:
    return PaperApiClient(ctx.api_url, timeout=ctx.timeout, retry=ctx.retry)


def resolve_only(ctx: BuildContext, client: BuildsApi | None = None) -> BuildDescriptor:
    check_version_spec(ctx.version)
    if client is not None:
        return resolve(client, ctx.version, project=ctx.project, channel=ctx.channel)
    with make_client(ctx) as owned:
        return resolve(owned, ctx.version, project=ctx.project, channel=ctx.channel)


def build_pipeline(ctx: BuildContext, client: BuildsApi | None = None) -> PipelineResult:
    """Resolve ``ctx.version`` and stage its artifact under ``ctx.dest``.

    The version is validated before a client is created so configuration
    errors never open a connection.
    """
    check_version_spec(ctx.version)
    if client is None:
        with make_client(ctx) as owned:
            return _run(ctx, owned)
    return _run(ctx, client)


def _run(ctx: BuildContext, client: BuildsApi) -> PipelineResult:
    descriptor = resolve(client, ctx.version, project=ctx.project, channel=ctx.channel)
    artifact = fetch(client, descriptor, ctx.dest, artifact_name=ctx.artifact_name)
    log.info(
        f"Pipeline complete: {descriptor.project} {descriptor.version} "
        f"build {descriptor.build_id}"
    )
    return PipelineResult(descriptor=descriptor, artifact=artifact)
