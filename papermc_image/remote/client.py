"""Metadata and download client for the PaperMC v2 API.

The pipeline only depends on the narrow :class:`BuildsApi` protocol so tests
can substitute an in-process stub. :class:`PaperApiClient` is the httpx-backed
implementation with bounded retries and exponential backoff.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from papermc_image.errors import (
    DownloadError,
    PipelineError,
    UpstreamUnavailableError,
    VersionNotFoundError,
)
from papermc_image.logging import get_logger
from papermc_image.types import BuildDescriptor, BuildInfo, RetryPolicy
from papermc_image.validator import validate_builds_response

DEFAULT_API_URL = "https://api.papermc.io"
DEFAULT_TIMEOUT = 30.0
USER_AGENT = "papermc-image/0.1"

log = get_logger(__name__)


class BuildsApi(Protocol):
    api_url: str

    def query(self, project: str, version: str) -> list[BuildInfo]: ...

    def download(self, url: str) -> bytes: ...


def builds_url(api_url: str, project: str, version: str) -> str:
    return f"{api_url.rstrip('/')}/v2/projects/{quote(project)}/versions/{quote(version)}/builds"


def artifact_url(api_url: str, descriptor: BuildDescriptor) -> str:
    base = builds_url(api_url, descriptor.project, descriptor.version)
    return f"{base}/{descriptor.build_id}/downloads/{quote(descriptor.artifact_filename)}"


def _is_transient(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def _parse_builds(data: dict) -> list[BuildInfo]:
    builds: list[BuildInfo] = []
    for item in data["builds"]:
        app = item["downloads"]["application"]
        builds.append(
            BuildInfo(
                build=item["build"],
                filename=app["name"],
                sha256=app.get("sha256"),
                time=item.get("time"),
                channel=item.get("channel"),
            )
        )
    return builds


class PaperApiClient:
    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retry: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> PaperApiClient:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Narrow interface
    # ------------------------------------------------------------------

    def query(self, project: str, version: str) -> list[BuildInfo]:
        url = builds_url(self.api_url, project, version)
        resp = self._get(url, UpstreamUnavailableError, parse_json=True)
        if resp.status_code == 404:
            raise VersionNotFoundError(f"{project} has no version {version!r} ({url})")
        if resp.status_code != 200:
            raise UpstreamUnavailableError(f"GET {url} returned HTTP {resp.status_code}")
        data = resp.json()
        validate_builds_response(data)
        try:
            return _parse_builds(data)
        except ValidationError as e:
            raise UpstreamUnavailableError(f"unusable build entry in {url}: {e}") from e

    def download(self, url: str) -> bytes:
        resp = self._get(url, DownloadError)
        if resp.status_code != 200:
            raise DownloadError(f"GET {url} returned HTTP {resp.status_code}")
        return resp.content

    # ------------------------------------------------------------------
    # Retry loop
    # ------------------------------------------------------------------

    def _get(
        self, url: str, exhausted: type[PipelineError], *, parse_json: bool = False
    ) -> httpx.Response:
        """GET *url*, retrying transient failures.

        Returns the first response that is not transient (including 4xx, which
        the caller maps). Raises *exhausted* once the retry budget is spent.
        """
        attempts = self.retry.max_retries + 1
        last_error = ""
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                delay = self.retry.delay(attempt - 1)
                log.info(f"Retrying GET {url} in {delay:.2f}s (attempt {attempt}/{attempts})")
                self._sleep(delay)
            try:
                resp = self._client.get(url)
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
                log.warning(f"GET {url} failed: {last_error}")
                continue
            except httpx.RequestError as e:
                # Redirect loops and undecodable bodies do not improve on retry
                raise exhausted(f"GET {url} failed: {type(e).__name__}: {e}") from e

            if _is_transient(resp.status_code):
                last_error = f"HTTP {resp.status_code}"
                log.warning(f"GET {url} returned {last_error}")
                continue

            if parse_json and resp.status_code == 200:
                try:
                    resp.json()
                except ValueError as e:
                    last_error = f"malformed JSON body: {e}"
                    log.warning(f"GET {url} returned {last_error}")
                    continue

            log.debug(f"GET {url} -> {resp.status_code} after {attempt} attempt(s)")
            return resp

        raise exhausted(f"GET {url} failed after {attempts} attempt(s): {last_error}")
