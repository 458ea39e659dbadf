"""Serving and route inspection commands."""

import os

import click

from crudforge.api.runtime import build_runtime
from crudforge.config import AppConfig, resolve_base_path
from crudforge.persistence.config import DatabaseConfig


@click.command()
@click.option("--verbose", "-v", is_flag=True, help="Also list each pipeline's stages.")
def routes(verbose: bool):
    """Print every composed route with its pipeline shape."""
    config = AppConfig.load(resolve_base_path())
    # Composition never touches the database
    config.database = DatabaseConfig(url="sqlite:///:memory:")
    try:
        runtime = build_runtime(config)
    except (KeyError, ValueError) as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    prefix = config.api_prefix.rstrip("/")
    width = max((len(prefix + r.path) for r in runtime.routes), default=0)
    for route in runtime.routes:
        click.echo(
            f"{route.method:<7} {prefix + route.path:<{width}}  "
            f"{route.model}.{route.action:<15} {route.pipeline.shape.value}"
        )
        if verbose:
            click.echo(f"        {' -> '.join(route.pipeline.stage_names)}")
    click.echo(f"\n{len(runtime.routes)} route(s)")


@click.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=lambda: int(os.environ.get("CRUDFORGE_PORT", "8000")), type=int)
@click.option("--reload", is_flag=True, help="Restart on code changes.")
def serve(host: str, port: int, reload: bool):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "crudforge.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=os.environ.get("CRUDFORGE_LOG_LEVEL", "info").lower(),
    )
