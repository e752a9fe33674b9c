#!/usr/bin/env python3
"""
statetool CLI

Command-line interface for running state test suites.

Usage:
    statetool run [--suite ID] [--config FILE] [--cache FILE] [--report FILE]
                  [--super-circuit] [--verbose] [--backend geth|pyevm]
    statetool show <cache_file>
    statetool config [--config FILE]
"""

import json
import time
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .backends import make_backend
from .config import BACKENDS, load_config
from .constants import STATETOOL_CACHE_FILE
from .exceptions import StateToolException
from .logger import get_logger, set_level
from .prover import make_prover
from .statetest import (
    CircuitsConfig,
    Compiler,
    Results,
    load_statetests_suite,
    run_statetests_suite,
)

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="statetool")
def cli():
    """statetool: state test runner

    Replays state test fixtures through an execution tracer, builds witnesses
    and checks the resulting state.
    """
    pass


@cli.command("run")
@click.option("--suite", "-s", "suite_id", default="default", help="Suite id from the config file")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to Config.toml")
@click.option(
    "--cache",
    type=click.Path(),
    default=str(STATETOOL_CACHE_FILE),
    help="Result cache file; cached tests are not run again",
)
@click.option("--no-cache", is_flag=True, help="Do not read or write a result cache")
@click.option("--report", type=click.Path(), help="Write a JSON report to this path")
@click.option("--super-circuit", is_flag=True, default=None, help="Prove with the super circuit")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging and trace printing")
@click.option("--backend", type=click.Choice(BACKENDS), help="Override the tracer backend")
def run_cmd(
    suite_id: str,
    config_path: Optional[str],
    cache: str,
    no_cache: bool,
    report: Optional[str],
    super_circuit: Optional[bool],
    verbose: bool,
    backend: Optional[str],
):
    """Run a state test suite.

    Examples:

        statetool run --suite default

        statetool run --backend geth --report report.json
    """
    if verbose:
        set_level("DEBUG")

    try:
        config = load_config(config_path)
        if backend:
            config.tracer.backend = backend
        config.validate()
        suite = config.suite(suite_id)
    except StateToolException as e:
        raise click.ClickException(str(e))

    circuits_config = CircuitsConfig(
        super_circuit=config.prover.super_circuit if super_circuit is None else super_circuit,
        verbose=verbose or config.prover.verbose,
        skip_self_destruct=config.tracer.skip_self_destruct,
    )

    try:
        tcs = load_statetests_suite(suite, config, Compiler())
    except StateToolException as e:
        raise click.ClickException(f"Failed to load suite {suite_id}: {e}")

    try:
        results = Results() if no_cache else Results.with_cache(Path(cache))
        tracer = make_backend(config.tracer)
        prover = make_prover(config.prover.argv)
    except (StateToolException, OSError, ValueError) as e:
        raise click.ClickException(str(e))

    logger.info("Running %d tests of suite %s with %s", len(tcs), suite.id, tracer)
    start = time.time()
    run_statetests_suite(tcs, circuits_config, suite, results, tracer, prover)
    logger.info("Finished in %.2fs", time.time() - start)

    results.print_summary(Console())
    if report:
        path = results.write_json_report(Path(report))
        click.echo(f"Report written to {path}")


@cli.command("show")
@click.argument("cache_file", type=click.Path(exists=True))
@click.option("--failures/--no-failures", default=True, help="List failing tests")
def show_cmd(cache_file: str, failures: bool):
    """Summarize the results recorded in a cache file.

    Examples:

        statetool show results.cache
    """
    try:
        results = Results.with_cache(Path(cache_file))
    except StateToolException as e:
        raise click.ClickException(str(e))
    results.print_summary(Console(), show_failures=failures)


@cli.command("config")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to Config.toml")
def config_cmd(config_path: Optional[str]):
    """Print the resolved configuration as JSON."""
    try:
        config = load_config(config_path)
        config.validate()
    except StateToolException as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(config.to_dict(), indent=2))


if __name__ == "__main__":
    cli()
