"""Validation result persistence."""

from __future__ import annotations

from pathlib import Path

from upload_gate.io import write_json
from upload_gate.models import ValidationResult

RESULT_FILE_NAME = "validation_result.json"


def write_validation_json(out_dir: Path, result: ValidationResult) -> Path:
    """Write ``validation_result.json`` into *out_dir* and return the path."""
    return write_json(Path(out_dir) / RESULT_FILE_NAME, result.to_dict())
