from __future__ import annotations

import httpx
import pytest

from papermc_image.errors import DownloadError, UpstreamUnavailableError, VersionNotFoundError
from papermc_image.remote.client import PaperApiClient, artifact_url
from papermc_image.resolve.builds import resolve
from papermc_image.types import BuildDescriptor, RetryPolicy

API = "https://api.test"
BUILDS_PATH = "/v2/projects/paper/versions/1.21.4/builds"


def _builds_body(*ids: int, extra: bool = False) -> dict:
    builds = []
    for i in ids:
        entry = {
            "build": i,
            "time": f"2024-12-{i:02d}T10:00:00.000Z",
            "channel": "default",
            "promoted": False,
            "changes": [],
            "downloads": {
                "application": {"name": f"paper-1.21.4-{i}.jar", "sha256": f"{i:064x}"}
            },
        }
        if extra:
            entry["downloads"]["mojang-mappings"] = {"name": "m.jar", "sha256": "0" * 64}
            entry["new_field"] = {"nested": True}
        builds.append(entry)
    return {"project_id": "paper", "project_name": "Paper", "version": "1.21.4", "builds": builds}


def _client(handler, delays: list[float] | None = None, retries: int = 3) -> PaperApiClient:
    sleep = delays.append if delays is not None else (lambda _s: None)
    return PaperApiClient(
        API,
        timeout=5,
        retry=RetryPolicy(max_retries=retries, base_delay=0.5, factor=2.0, max_delay=10),
        transport=httpx.MockTransport(handler),
        sleep=sleep,
    )


def test_query_parses_builds_and_ignores_unknown_fields() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == BUILDS_PATH
        return httpx.Response(200, json=_builds_body(10, 11, 9, extra=True))

    with _client(handler) as client:
        builds = client.query("paper", "1.21.4")

    assert [b.build for b in builds] == [10, 11, 9]
    assert builds[1].filename == "paper-1.21.4-11.jar"
    assert builds[1].sha256 == f"{11:064x}"
    assert builds[1].channel == "default"
    assert builds[1].time is not None


def test_retry_after_two_503_with_non_decreasing_backoff() -> None:
    responses = iter([503, 503, 200])
    seen: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(responses)
        seen.append(status)
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json=_builds_body(10, 11, 9))

    delays: list[float] = []
    with _client(handler, delays) as client:
        desc = resolve(client, "1.21.4")

    assert desc.build_id == 11
    assert seen == [503, 503, 200]
    assert len(delays) == 2
    assert delays == sorted(delays)
    assert delays == [0.5, 1.0]


def test_transport_errors_are_retried() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ConnectError("connection reset", request=request)
        if calls["n"] == 2:
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200, json=_builds_body(1))

    with _client(handler) as client:
        assert client.query("paper", "1.21.4")[0].build == 1
    assert calls["n"] == 3


def test_exhausted_retries_raise_upstream_unavailable() -> None:
    delays: list[float] = []
    with _client(lambda r: httpx.Response(502), delays, retries=2) as client:
        with pytest.raises(UpstreamUnavailableError, match="3 attempt"):
            client.query("paper", "1.21.4")
    assert delays == [0.5, 1.0]


def test_backoff_is_capped() -> None:
    policy = RetryPolicy(max_retries=6, base_delay=1, factor=3, max_delay=10)
    delays = [policy.delay(n) for n in range(1, 7)]
    assert delays == [1, 3, 9, 10, 10, 10]


def test_404_is_not_retried_and_means_version_not_found() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(404, json={"error": "Version not found."})

    delays: list[float] = []
    with _client(handler, delays) as client:
        with pytest.raises(VersionNotFoundError):
            client.query("paper", "0.0.1")
    assert len(calls) == 1
    assert delays == []


def test_empty_builds_list_means_version_not_found() -> None:
    with _client(lambda r: httpx.Response(200, json=_builds_body())) as client:
        with pytest.raises(VersionNotFoundError):
            resolve(client, "1.21.4")


def test_missing_required_field_fails_clearly_without_retry() -> None:
    body = _builds_body(5)
    del body["builds"][0]["downloads"]["application"]["name"]
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json=body)

    with _client(handler) as client:
        with pytest.raises(UpstreamUnavailableError, match="builds/0/downloads/application"):
            client.query("paper", "1.21.4")
    assert calls["n"] == 1


def test_malformed_json_is_retried_then_fatal() -> None:
    with _client(lambda r: httpx.Response(200, content=b"{not json"), retries=1) as client:
        with pytest.raises(UpstreamUnavailableError, match="malformed JSON"):
            client.query("paper", "1.21.4")


def test_download_returns_payload_after_transient_failure() -> None:
    desc = BuildDescriptor(
        project="paper", version="1.21.4", build_id=11, artifact_filename="paper-1.21.4-11.jar"
    )
    url = artifact_url(API, desc)
    responses = iter([httpx.Response(500), httpx.Response(200, content=b"PK\x03\x04jar")])

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == url
        return next(responses)

    with _client(handler) as client:
        assert client.download(url) == b"PK\x03\x04jar"
    assert url == f"{API}{BUILDS_PATH}/11/downloads/paper-1.21.4-11.jar"


def test_download_404_is_fatal_download_error() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(404)

    with _client(handler) as client:
        with pytest.raises(DownloadError, match="404"):
            client.download(f"{API}/missing.jar")
    assert calls["n"] == 1


def test_download_exhaustion_is_download_error() -> None:
    with _client(lambda r: httpx.Response(503), retries=1) as client:
        with pytest.raises(DownloadError):
            client.download(f"{API}/x.jar")


def test_429_is_retried() -> None:
    responses = iter([429, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(responses)
        if status != 200:
            return httpx.Response(status, headers={"Retry-After": "1"})
        return httpx.Response(200, json=_builds_body(3))

    delays: list[float] = []
    with _client(handler, delays) as client:
        assert client.query("paper", "1.21.4")[0].build == 3
    assert delays == [0.5]


@pytest.mark.parametrize("status", [400, 401, 403])
def test_other_4xx_on_query_fails_after_one_request(status: int) -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(status)

    delays: list[float] = []
    with _client(handler, delays) as client:
        with pytest.raises(UpstreamUnavailableError, match=str(status)):
            client.query("paper", "1.21.4")
    assert calls["n"] == 1
    assert delays == []


def test_redirect_loop_is_fatal_without_retry() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(302, headers={"Location": str(request.url)})

    delays: list[float] = []
    with _client(handler, delays) as client:
        with pytest.raises(UpstreamUnavailableError, match="TooManyRedirects"):
            client.query("paper", "1.21.4")
        per_call = calls["n"]
        with pytest.raises(DownloadError, match="TooManyRedirects"):
            client.download(f"{API}/loop.jar")
        max_hops = client._client.max_redirects + 1
    # One pass over the redirect chain, no retries
    assert delays == []
    assert per_call <= max_hops
    assert calls["n"] == 2 * per_call


def test_undecodable_body_is_fatal_without_retry() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"notgzip")

    with _client(handler) as client:
        with pytest.raises(DownloadError, match="DecodingError"):
            client.download(f"{API}/x.jar")
    assert calls["n"] == 1
