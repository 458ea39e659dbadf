"""Permission export commands.

``crudforge permissions export`` writes the declared access-control tables
to a YAML file. When the file already holds a role set for a (resource,
action) and the metadata now declares a different one, the change is a
:class:`ConflictWarning`: each one must be confirmed, unless ``--yes`` is
given or ``tooling.autoApproveConflicts`` is set.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import click
import yaml

from crudforge.auth.permissions import diff_permissions, permission_table
from crudforge.config import AppConfig, resolve_base_path
from crudforge.errors import ConflictWarning, Fatal, Recoverable
from crudforge.metadata.loader import MetadataLoader

DEFAULT_OUTPUT = "permissions.yaml"


def read_permissions(path: Path) -> dict[str, dict[str, list[str]]]:
    """The previously exported table, or an empty one."""
    if not path.exists():
        return {}
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a permission table")
    return data


def export_permissions(
    loader: MetadataLoader,
    output: Path,
    approve: Callable[[ConflictWarning], bool],
) -> dict[str, Any] | Recoverable | Fatal:
    """Write the permission table, asking *approve* about each conflict.

    Returns the written table, a Recoverable outcome when a conflict was
    declined (nothing is written), or Fatal when reading or writing failed.
    """
    try:
        previous = read_permissions(output)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        return Fatal(exc)

    proposed = permission_table(loader)
    declined = [w for w in diff_permissions(previous, proposed) if not approve(w)]
    if declined:
        return Recoverable(
            "Permission export cancelled; the stored role sets were left unchanged",
            hints=[w.describe() for w in declined],
        )

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w") as f:
            yaml.safe_dump(proposed, f, sort_keys=True, default_flow_style=None)
    except OSError as exc:
        return Fatal(exc)
    return proposed


def _prompt(warning: ConflictWarning) -> bool:
    try:
        return click.confirm(f"Change {warning.describe()}?", default=False)
    except click.Abort:
        # No interactive input available
        return False


@click.group()
def permissions():
    """Access-control commands."""
    pass


@permissions.command("export")
@click.option(
    "--output",
    "-o",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Target file (default: metadata/permissions.yaml).",
)
@click.option("--yes", "-y", is_flag=True, help="Approve every role-set change.")
def export_cmd(output: Path | None, yes: bool):
    """Export the access-control tables to YAML."""
    config = AppConfig.load(resolve_base_path())
    metadata_path = config.metadata_path
    if not metadata_path.exists():
        click.echo(f"Error: Metadata directory not found at {metadata_path}", err=True)
        raise SystemExit(1)

    loader = MetadataLoader(metadata_path)
    loader.load_all()
    output = output or metadata_path / DEFAULT_OUTPUT

    auto_approve = yes or config.auto_approve_conflicts
    if auto_approve:
        def approve(warning):
            click.echo(click.style(f"Approved {warning.describe()}", fg="yellow"))
            return True
    else:
        approve = _prompt

    outcome = export_permissions(loader, output, approve)
    if isinstance(outcome, Recoverable):
        click.echo(click.style(outcome.message, fg="yellow"), err=True)
        for hint in outcome.hints:
            click.echo(f"  - {hint}", err=True)
        raise SystemExit(1)
    if isinstance(outcome, Fatal):
        click.echo(click.style(f"Error: {outcome.message}", fg="red"), err=True)
        raise SystemExit(2)

    click.echo(
        click.style(
            f"Exported permissions for {len(outcome)} resource(s) to {output}", fg="green"
        )
    )
