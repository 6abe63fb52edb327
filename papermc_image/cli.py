"""papermc-image CLI: resolve and stage the PaperMC server jar for image builds.

Commands:
- fetch VERSION: resolve the latest build and stage it under --dest
- resolve VERSION: print the resolved build descriptor as JSON
- verify FILE SHA256: check a local artifact against a digest
- containerfile: render the multi-stage Containerfile
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from papermc_image.core import DEFAULT_DEST, BuildContext, build_pipeline, resolve_only
from papermc_image.errors import DiskError, PipelineError
from papermc_image.installer.fetch import ARTIFACT_NAME, check_artifact_name
from papermc_image.logging import set_verbose
from papermc_image.package.docker import ImageLayout, write_containerfile
from papermc_image.remote.client import DEFAULT_API_URL, DEFAULT_TIMEOUT
from papermc_image.resolve.builds import DEFAULT_PROJECT, check_version_spec
from papermc_image.signing.checks import verify_sha256
from papermc_image.types import RetryPolicy

app = typer.Typer(add_completion=False, help="Fetch PaperMC server builds for container images")
console = Console()
err_console = Console(stderr=True)

API_URL_OPT = typer.Option(
    DEFAULT_API_URL, "--api-url", envvar="PAPERMC_API_URL", help="Metadata API base URL"
)
PROJECT_OPT = typer.Option(
    DEFAULT_PROJECT, "--project", envvar="PAPERMC_PROJECT", help="API project name"
)
CHANNEL_OPT = typer.Option(
    None, "--channel", envvar="PAPERMC_CHANNEL", help="Only consider builds on this channel"
)
TIMEOUT_OPT = typer.Option(
    DEFAULT_TIMEOUT, "--timeout", envvar="PAPERMC_TIMEOUT", help="Seconds per network attempt"
)
RETRIES_OPT = typer.Option(
    3, "--retries", envvar="PAPERMC_RETRIES", min=0, help="Retries for transient failures"
)


def _fail(err: PipelineError, stage: str | None = None) -> typer.Exit:
    err_console.print(f"[red]{stage or err.stage} failed:[/red] {err}")
    return typer.Exit(code=1)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    set_verbose(verbose)


@app.command()
def fetch(
    version: str = typer.Argument(..., help="Game version, e.g. 1.21.4"),
    dest: Path = typer.Option(
        DEFAULT_DEST, "--dest", envvar="PAPERMC_DEST", help="Output directory"
    ),
    name: str = typer.Option(ARTIFACT_NAME, "--name", help="Final artifact file name"),
    project: str = PROJECT_OPT,
    channel: str | None = CHANNEL_OPT,
    api_url: str = API_URL_OPT,
    timeout: float = TIMEOUT_OPT,
    retries: int = RETRIES_OPT,
) -> None:
    ctx = BuildContext(
        version=version,
        dest=dest,
        project=project,
        channel=channel,
        api_url=api_url,
        timeout=timeout,
        retry=RetryPolicy(max_retries=retries),
        artifact_name=name,
    )
    try:
        check_version_spec(version)
        check_artifact_name(name)
    except PipelineError as e:
        raise _fail(e) from e
    try:
        dest.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise _fail(DiskError(f"Cannot create {dest}: {e}")) from e
    try:
        result = build_pipeline(ctx)
    except PipelineError as e:
        raise _fail(e) from e

    table = Table(title=f"{result.descriptor.project} {result.descriptor.version}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("build", str(result.descriptor.build_id))
    table.add_row("source", result.descriptor.artifact_filename)
    table.add_row("path", str(result.artifact.path))
    table.add_row("sha256", result.artifact.sha256)
    table.add_row("status", "unchanged" if result.artifact.skipped else "downloaded")
    console.print(table)


@app.command()
def resolve(
    version: str = typer.Argument(..., help="Game version, e.g. 1.21.4"),
    project: str = PROJECT_OPT,
    channel: str | None = CHANNEL_OPT,
    api_url: str = API_URL_OPT,
    timeout: float = TIMEOUT_OPT,
    retries: int = RETRIES_OPT,
) -> None:
    ctx = BuildContext(
        version=version,
        project=project,
        channel=channel,
        api_url=api_url,
        timeout=timeout,
        retry=RetryPolicy(max_retries=retries),
    )
    try:
        descriptor = resolve_only(ctx)
    except PipelineError as e:
        raise _fail(e) from e
    print(descriptor.model_dump_json(indent=2))


@app.command()
def verify(
    artifact: Path = typer.Argument(..., help="Path to the artifact"),
    sha256: str = typer.Argument(..., help="Expected digest (hex or sha256:<hex>)"),
) -> None:
    if not artifact.is_file():
        raise _fail(DiskError(f"No such file: {artifact}"), stage="verify")
    try:
        verify_sha256(artifact, expected=sha256)
    except PipelineError as e:
        raise _fail(e, stage="verify") from e
    rprint("[green]SHA-256 verified.[/green]")


@app.command()
def containerfile(
    out: Path = typer.Option(Path("."), "--out", help="Directory to write the Containerfile to"),
    name: str = typer.Option(ARTIFACT_NAME, "--name", help="Artifact file name inside the image"),
) -> None:
    try:
        check_artifact_name(name)
    except PipelineError as e:
        raise _fail(e) from e
    path = write_containerfile(out, ImageLayout(artifact_name=name))
    rprint(f"[green]Containerfile written:[/green] {path}")


if __name__ == "__main__":
    app()
