"""Schema validation for metadata API payloads."""

from __future__ import annotations

import json
from functools import cache
from importlib import resources

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from papermc_image.errors import UpstreamUnavailableError

# --- Schema loaders ---------------------------------------------------------


def _load_schema(package: str, resource_name: str) -> dict:
    with resources.files(package).joinpath(resource_name).open("r", encoding="utf-8") as f:
        return json.load(f)


@cache
def _builds_validator() -> Draft202012Validator:
    return Draft202012Validator(_load_schema("papermc_image.schema", "builds.schema.json"))


# --- Public validators ------------------------------------------------------


def validate_builds_response(data: object) -> None:
    """Raise UpstreamUnavailableError if *data* breaks the builds contract.

    Extra fields are tolerated; only missing or mistyped required fields fail.
    """
    try:
        _builds_validator().validate(data)
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise UpstreamUnavailableError(
            f"metadata response does not match the builds contract at {where}: {e.message}"
        ) from e
