"""Top-level CLI entry point for creditpulse."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from creditpulse import __version__


@click.group()
@click.version_option(version=__version__, prog_name="creditpulse")
@click.option(
    "--config",
    type=click.Path(),
    default=None,
    envvar="CREDITPULSE_CONFIG",
    help="Path to config.yaml",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """creditpulse -- explainable credit scoring with token-gated access."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# Register sub-commands
from creditpulse.cli.config_cmd import config_group  # noqa: E402
from creditpulse.cli.model_cmd import model_group  # noqa: E402
from creditpulse.cli.runs_cmd import runs_group  # noqa: E402
from creditpulse.cli.score import score_group  # noqa: E402
from creditpulse.cli.serve_cmd import serve_cmd  # noqa: E402
from creditpulse.cli.token_cmd import token_group  # noqa: E402

cli.add_command(config_group, "config")
cli.add_command(model_group, "model")
cli.add_command(runs_group, "runs")
cli.add_command(score_group, "score")
cli.add_command(serve_cmd, "serve")
cli.add_command(token_group, "token")


@cli.command()
@click.option("--no-seed", is_flag=True, help="Skip seeding the baseline model")
@click.pass_context
def init(ctx: click.Context, no_seed: bool) -> None:
    """Initialize creditpulse: create the database, seed the baseline model, write config."""
    from creditpulse.config.loader import load_config, resolve_path, write_example_config
    from creditpulse.engine.model import seed_baseline_model
    from creditpulse.storage.database import Database
    from creditpulse.storage.migrations import ensure_schema

    config = load_config(ctx.obj.get("config_path"))

    home = Path("~/.creditpulse").expanduser()
    home.mkdir(parents=True, exist_ok=True)

    db_path = resolve_path(config.database.path)
    click.echo(f"  Database: {db_path}")

    with Database(db_path) as db:
        version = ensure_schema(db)
        click.echo(f"  Schema version: {version}")

        if not no_seed:
            model = seed_baseline_model(db, config.baseline_model)
            click.echo(
                f"  Seeded model {model.name} v{model.version} "
                f"({len(model.factors)} factors, {len(model.bands)} bands)"
            )

    user_config = home / "config.yaml"
    if not user_config.exists():
        write_example_config(user_config)
        click.echo(f"  Wrote default config to {user_config}")

    click.echo("\ncreditpulse initialized successfully.")
    click.echo("Next steps:")
    click.echo("  1. Run: creditpulse token keygen   (to create the signing keypair)")
    click.echo("  2. Run: creditpulse serve          (to start the API)")
