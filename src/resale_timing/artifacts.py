"""Versioned, checksummed JSON artifacts for calibration datasets and baselines.

An artifact is a JSON document holding a name, a version, a description,
a list of records and the SHA-256 checksum of the canonical record
payload. No timestamps are written, so regenerating an artifact from the
same seed produces byte-identical output.
"""
from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Union

from .config import ARTIFACT_VERSION


class ArtifactChecksumError(ValueError):
    """Raised when an artifact's records do not match its stored checksum."""


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def checksum(records: Any) -> str:
    return hashlib.sha256(canonical_json(records).encode("utf-8")).hexdigest()


def build_artifact(name: str, description: str, records: list, version: str = ARTIFACT_VERSION) -> dict:
    return {
        "name": name,
        "version": version,
        "description": description,
        "checksum": checksum(records),
        "records": records,
    }


def write_artifact(
    path: Union[str, Path],
    name: str,
    description: str,
    records: list,
    version: str = ARTIFACT_VERSION,
) -> Path:
    """Write *records* as an artifact at *path*, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document = build_artifact(name, description, records, version)
    path.write_text(json.dumps(document, sort_keys=True, indent=2, default=str) + "\n", encoding="utf-8")
    return path


def load_artifact(path: Union[str, Path]) -> dict:
    """Read an artifact and verify its checksum.

    Raises ArtifactChecksumError if the records were modified.
    """
    document = json.loads(Path(path).read_text(encoding="utf-8"))
    expected = document.get("checksum")
    actual = checksum(document.get("records"))
    if expected != actual:
        raise ArtifactChecksumError(
            f"Checksum mismatch in {path}: stored {expected}, computed {actual}."
        )
    return document
