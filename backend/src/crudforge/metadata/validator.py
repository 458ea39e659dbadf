"""
metadata/validator.py - JSON Schema validation for model YAML files.

Validates ``models/*.yaml`` (and the optional ``app.yaml``) under a metadata
directory before the loader resolves them.

Usage:
    from crudforge.metadata.validator import validate_metadata_dir

    issues = validate_metadata_dir(Path("metadata"))
    for issue in issues:
        print(issue)
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

logger = logging.getLogger(__name__)

_SCHEMAS_DIR = Path(__file__).parent / "schemas"

# Map subdirectory name → schema filename
_SUBDIR_SCHEMA: dict[str, str] = {
    "models": "model.schema.json",
}

_APP_SCHEMA = "app.schema.json"


@dataclass
class ValidationIssue:
    """A single validation finding for a metadata YAML file."""

    file: Path
    message: str
    path: str = ""          # JSON pointer path within the document, e.g. "fields/0"
    severity: str = "error" # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{loc}: {self.message}"


def _load_schema(name: str) -> dict[str, Any]:
    schema_path = _SCHEMAS_DIR / name
    with schema_path.open() as fh:
        return json.load(fh)


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


def validate_yaml_file(yaml_path: Path, schema_name: str) -> list[ValidationIssue]:
    """
    Validate a single YAML file against the named schema.

    Args:
        yaml_path:   Path to the YAML file to validate.
        schema_name: Filename of the schema (e.g. ``"model.schema.json"``).

    Returns:
        A list of :class:`ValidationIssue` objects (empty on success).
    """
    try:
        with yaml_path.open() as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        return [ValidationIssue(file=yaml_path, message=f"YAML parse error: {exc}")]

    if raw is None:
        return [
            ValidationIssue(file=yaml_path, message="File is empty or contains only whitespace")
        ]

    validator = Draft202012Validator(_load_schema(schema_name))
    return [
        ValidationIssue(file=yaml_path, message=error.message, path=_json_path(error))
        for error in sorted(validator.iter_errors(raw), key=lambda e: list(e.path))
    ]


def validate_metadata_dir(metadata_dir: Path) -> list[ValidationIssue]:
    """
    Validate all YAML files under *metadata_dir*.

    Returns:
        A flat list of :class:`ValidationIssue` objects across all files.
        Empty list means all files are valid.
    """
    if not metadata_dir.is_dir():
        return [
            ValidationIssue(
                file=metadata_dir,
                message=f"Metadata directory does not exist: {metadata_dir}",
            )
        ]

    all_issues: list[ValidationIssue] = []

    app_file = metadata_dir / "app.yaml"
    if app_file.exists():
        all_issues.extend(validate_yaml_file(app_file, _APP_SCHEMA))

    for subdir, schema_name in _SUBDIR_SCHEMA.items():
        target = metadata_dir / subdir
        if not target.is_dir():
            continue
        for yaml_file in sorted(target.glob("*.yaml")):
            all_issues.extend(validate_yaml_file(yaml_file, schema_name))

    return all_issues
