"""Metadata CLI commands."""

from pathlib import Path

import click

from crudforge.config import resolve_base_path
from crudforge.metadata.loader import MetadataLoader
from crudforge.metadata.validator import (
    _APP_SCHEMA,
    _SUBDIR_SCHEMA,
    validate_metadata_dir,
    validate_yaml_file,
)


def _schema_for(target_path: Path) -> str | None:
    if target_path.name == "app.yaml":
        return _APP_SCHEMA
    return _SUBDIR_SCHEMA.get(target_path.parent.name)


@click.group()
def metadata():
    """Metadata commands."""
    pass


@metadata.command()
@click.option(
    "--path",
    "target_path",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="Validate a single YAML file instead of the whole metadata directory.",
)
def validate(target_path: Path | None):
    """Validate metadata YAML files against JSON Schemas, then load them."""
    metadata_path = resolve_base_path() / "metadata"

    if target_path is not None:
        schema_name = _schema_for(target_path)
        if schema_name is None:
            click.echo(
                f"Error: cannot determine schema for '{target_path}'. "
                "Expected app.yaml or a file under models/.",
                err=True,
            )
            raise SystemExit(1)
        issues = validate_yaml_file(target_path, schema_name)
    else:
        if not metadata_path.exists():
            click.echo(f"Error: Metadata directory not found at {metadata_path}", err=True)
            raise SystemExit(1)
        issues = validate_metadata_dir(metadata_path)

    for issue in issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if any(issue.severity == "error" for issue in issues):
        click.echo(click.style(f"\n{len(issues)} schema issue(s) found", fg="red", bold=True))
        raise SystemExit(1)

    # Relation targets are only checked when the whole directory is loaded
    if target_path is None:
        try:
            loader = MetadataLoader(metadata_path)
            loader.load_all()
        except (KeyError, ValueError) as e:
            click.echo(click.style(f"\nSemantic validation failed: {e}", fg="red"), err=True)
            raise SystemExit(1)

        models = loader.list_models()
        click.echo(f"\nLoaded {len(models)} models:")
        for name in sorted(models):
            model = loader.get_model(name)
            click.echo(
                f"  ✓ {name} ({len(model.fields)} fields, "
                f"{len(model.relations)} relations, /{model.plural_name})"
            )

    click.echo(click.style("\nAll metadata is valid.", fg="green", bold=True))
