#!/usr/bin/env python3
"""
settlement/cli.py - CLI entrypoint for scenario replay.

Usage:
    dvp-settle run config/scenarios/swap_fungible.yaml
    dvp-settle run scenario.yaml --log-level DEBUG --json-logs
    dvp-settle show-config
"""

import json
import sys
from pathlib import Path

import click

from config import load_settlement_config
from core.logging import get_logger, set_global_context, setup_logging
from settlement.scenario import ScenarioError, ScenarioRunner, load_scenario

logger = get_logger("dvp.cli")


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Settlement config YAML (default: DVP_CONFIG_PATH or config/settlement.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """DvP settlement engine tools."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_settlement_config(config_path)


@cli.command()
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--log-level",
    "-l",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level (default: from config)",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=None,
    help="Use JSON log format (default: from config)",
)
@click.pass_context
def run(ctx: click.Context, scenario: Path, log_level: str | None, json_logs: bool | None) -> None:
    """
    Replay a YAML scenario and print the resulting trades as JSON.
    """
    config = ctx.obj["config"]
    setup_logging(
        level=log_level or config.logging.level,
        json_output=config.logging.json if json_logs is None else json_logs,
        log_file=config.logging.file,
    )
    set_global_context(service="dvp-settle", scenario=scenario.name)

    logger.info(
        "Replaying scenario",
        extra={"context": {"scenario": str(scenario)}},
    )

    try:
        summary = ScenarioRunner(load_scenario(scenario), config=config).run()
    except ScenarioError as e:
        logger.error(
            f"Scenario failed: {e}",
            extra={"context": {"scenario": str(scenario)}},
        )
        click.echo(f"Scenario failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(summary, indent=2, default=str))


@cli.command("show-config")
@click.pass_context
def show_config(ctx: click.Context) -> None:
    """Print the effective configuration."""
    click.echo(json.dumps(ctx.obj["config"].to_dict(), indent=2))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
