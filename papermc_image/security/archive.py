"""Structural checks on downloaded jar archives.

A server jar must be a readable zip with a manifest. Truncated downloads and
HTML error pages served with a 200 both fail here.
"""

from __future__ import annotations

import zipfile
import zlib
from pathlib import Path

from papermc_image.errors import IntegrityError

MANIFEST = "META-INF/MANIFEST.MF"


def verify_jar(path: Path) -> None:
    if path.stat().st_size == 0:
        raise IntegrityError(f"Downloaded artifact is empty: {path.name}")
    if not zipfile.is_zipfile(path):
        raise IntegrityError(f"Downloaded artifact is not a zip archive: {path.name}")
    try:
        with zipfile.ZipFile(path) as z:
            if MANIFEST not in z.namelist():
                raise IntegrityError(f"Jar has no {MANIFEST}: {path.name}")
            bad = z.testzip()
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise IntegrityError(f"Corrupt jar {path.name}: {e}") from e
    if bad is not None:
        raise IntegrityError(f"Corrupt member {bad} in {path.name}")
