"""CrudForge CLI entry point."""

import click


@click.group()
def cli():
    """CrudForge: metadata-driven REST API CLI."""
    pass


# Register subcommand groups
from crudforge.cli.metadata_cmd import metadata  # noqa: E402
from crudforge.cli.permissions_cmd import permissions  # noqa: E402
from crudforge.cli.serve_cmd import routes, serve  # noqa: E402

cli.add_command(metadata)
cli.add_command(permissions)
cli.add_command(routes)
cli.add_command(serve)
