"""Error taxonomy for the resolve → fetch pipeline.

Every error is terminal for the current invocation. Each carries the name of
the stage that failed so the CLI can report it without inspecting the type.
"""

from __future__ import annotations


class PipelineError(Exception):
    stage = "pipeline"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigurationError(PipelineError):
    """Bad or missing input; raised before any network call."""

    stage = "configure"


class VersionNotFoundError(PipelineError):
    """The metadata API answered, and it has no builds for the version."""

    stage = "resolve"


class UpstreamUnavailableError(PipelineError):
    """The metadata API is unreachable or its response is unusable."""

    stage = "resolve"


class DownloadError(PipelineError):
    stage = "fetch"


class IntegrityError(PipelineError):
    """The downloaded payload does not match what was published."""

    stage = "fetch"


class DiskError(PipelineError):
    stage = "fetch"
