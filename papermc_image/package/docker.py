"""Containerfile rendering for the PaperMC server image.

Only the fetch stage runs code from this package. The other stages consume
their tools through fixed invocation contracts:

- jlink builds a self-contained runtime from a module-inclusion policy
- mc-monitor answers ``status`` with the server health as its exit code
- cue validates and generates configuration from a schema directory
- start.sh is the final process entrypoint
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from papermc_image.installer.fetch import ARTIFACT_NAME

JDK_IMAGE = "docker.io/eclipse-temurin:21-jdk-alpine"
PYTHON_IMAGE = "docker.io/python:3.12-alpine"
MC_MONITOR_IMAGE = "docker.io/itzg/mc-monitor:0.15.5"
CUE_IMAGE = "docker.io/cuelang/cue:0.13.0"
BASE_IMAGE = "docker.io/alpine:3.22.0"
LICENSE_URL = (
    "https://raw.githubusercontent.com/Djaytan/docker-papermc-server/refs/heads/main/LICENSE.md"
)

# All modules are kept since plugins may need any of them.
JLINK_ARGS = (
    "--add-modules ALL-MODULE-PATH",
    "--strip-debug",
    "--no-man-pages",
    "--no-header-files",
    "--output /jre",
)

HEALTHCHECK_CMD = ("mc-monitor", "status")
ENTRYPOINT = ("./start.sh",)
RUNTIME_USER = "daemon:root"
SERVER_PORT = 25565


@dataclass(frozen=True)
class ImageLayout:
    server_dir: str = "/opt/papermc"
    java_home: str = "/opt/java"
    build_dir: str = "/build"
    artifact_name: str = ARTIFACT_NAME


def _json_array(items: tuple[str, ...]) -> str:
    return "[" + ", ".join(f'"{i}"' for i in items) + "]"


def render_containerfile(layout: ImageLayout | None = None) -> str:
    lay = layout or ImageLayout()
    jlink = " \\\n    ".join(JLINK_ARGS)
    return f"""\
# syntax=docker/dockerfile:1
# check=error=true

# See https://docs.docker.com/build/metadata/attestations/sbom/#arguments
ARG BUILDKIT_SBOM_SCAN_STAGE=true


FROM {JDK_IMAGE} AS jre-build

RUN ${{JAVA_HOME}}/bin/jlink \\
    {jlink}


FROM {PYTHON_IMAGE} AS papermc-server-build

ARG MINECRAFT_VERSION

RUN if [ -z "$MINECRAFT_VERSION" ]; then \\
        echo "Error: MINECRAFT_VERSION argument is not set." >&2; \\
        exit 1; \\
    fi

WORKDIR {lay.build_dir}

COPY . /src
RUN pip install --no-cache-dir /src && \\
    papermc-image fetch "$MINECRAFT_VERSION" --dest {lay.build_dir} --name {lay.artifact_name}


FROM {MC_MONITOR_IMAGE} AS mc-monitor-build


FROM {CUE_IMAGE} AS cuelang-build


FROM {BASE_IMAGE}

ENV JAVA_HOME={lay.java_home}
ENV PATH="${{JAVA_HOME}}/bin:${{PATH}}"

COPY --from=jre-build /jre ${{JAVA_HOME}}

# Must be set to "true" to accept the Minecraft EULA (https://aka.ms/MinecraftEULA).
ENV EULA=false

WORKDIR {lay.server_dir}

ADD --chmod=440 {LICENSE_URL} .

COPY --from=papermc-server-build --chmod=550 {lay.build_dir}/{lay.artifact_name} ./

RUN apk add --no-cache gettext libudev-zero

COPY --chmod=770 runtime/ ./

RUN chmod 770 {lay.server_dir} && \\
    chmod 550 {lay.server_dir}/start.sh

EXPOSE {SERVER_PORT}

COPY --from=mc-monitor-build --chmod=550 /mc-monitor /usr/local/bin/mc-monitor

COPY --from=cuelang-build --chmod=550 /usr/bin/cue /usr/local/bin/cue

# Group "root" keeps group-level access for arbitrary runtime UIDs.
USER {RUNTIME_USER}

ENTRYPOINT {_json_array(ENTRYPOINT)}

HEALTHCHECK --interval=5s --timeout=3s --start-period=30s \\
  CMD {_json_array(HEALTHCHECK_CMD)}
"""


def write_containerfile(outdir: Path, layout: ImageLayout | None = None) -> Path:
    outdir.mkdir(parents=True, exist_ok=True)
    path = outdir / "Containerfile"
    path.write_text(render_containerfile(layout), encoding="utf-8")
    return path
