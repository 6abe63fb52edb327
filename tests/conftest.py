from __future__ import annotations

import hashlib
import io
import zipfile

import pytest

from papermc_image.errors import VersionNotFoundError
from papermc_image.types import BuildInfo

API = "https://api.test"


def _make_jar(main_class: str = "io.papermc.paperclip.Main", extra: bytes = b"") -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as z:
        z.writestr("META-INF/MANIFEST.MF", f"Manifest-Version: 1.0\nMain-Class: {main_class}\n")
        z.writestr("io/papermc/paperclip/Main.class", b"\xca\xfe\xba\xbe" + extra)
    return buf.getvalue()


class StubApi:
    """In-process stand-in for the metadata/download API that records calls."""

    api_url = API

    def __init__(self) -> None:
        self.builds: dict[tuple[str, str], list[BuildInfo]] = {}
        self.payloads: dict[str, bytes] = {}
        self.queries: list[tuple[str, str]] = []
        self.downloads: list[str] = []

    def add_version(self, version: str, builds: list[BuildInfo], project: str = "paper") -> None:
        self.builds[(project, version)] = builds

    def query(self, project: str, version: str) -> list[BuildInfo]:
        self.queries.append((project, version))
        if (project, version) not in self.builds:
            raise VersionNotFoundError(f"{project} has no version {version!r}")
        return list(self.builds[(project, version)])

    def download(self, url: str) -> bytes:
        self.downloads.append(url)
        return self.payloads[url]

    @property
    def calls(self) -> int:
        return len(self.queries) + len(self.downloads)


@pytest.fixture
def make_jar():
    return _make_jar


@pytest.fixture
def sha256_hex():
    return lambda data: hashlib.sha256(data).hexdigest()


@pytest.fixture
def stub_api() -> StubApi:
    return StubApi()


def download_url(version: str, build: int, name: str, project: str = "paper") -> str:
    return f"{API}/v2/projects/{project}/versions/{version}/builds/{build}/downloads/{name}"


@pytest.fixture
def paper_1_21_4(stub_api: StubApi) -> StubApi:
    """Version 1.21.4 published as builds 10, 11 and 9, each with a distinct jar."""
    builds = []
    for build in (10, 11, 9):
        name = f"paper-1.21.4-{build}.jar"
        jar = _make_jar(extra=str(build).encode())
        stub_api.payloads[download_url("1.21.4", build, name)] = jar
        builds.append(
            BuildInfo(
                build=build,
                filename=name,
                sha256=hashlib.sha256(jar).hexdigest(),
                channel="default",
            )
        )
    stub_api.add_version("1.21.4", builds)
    return stub_api
