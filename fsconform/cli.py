"""
Command line front end: run the scenario catalogue against one store.
"""

import json
import logging
import sys
from pathlib import Path

import click

from fsconform import gate
from fsconform.config import load_config
from fsconform.runner import Outcome, ScenarioRunner
from fsconform.scenarios import SCENARIOS, select

STATUS_MARKS = {
    Outcome.PASSED: "PASS",
    Outcome.FAILED: "FAIL",
    Outcome.SKIPPED: "SKIP",
}


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log every timing and listing")
def main(verbose: bool):
    """Filesystem conformance and latency scenarios for object stores"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command("list")
def list_scenarios():
    """List the available scenarios"""
    for scenario in SCENARIOS:
        click.echo(f"{scenario.name:36} {scenario.description}")


@main.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML file with run options (S3_* environment variables override it)",
)
@click.option(
    "--scenario",
    "-s",
    "names",
    multiple=True,
    help="Scenario to run (can specify multiple, default: all)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write JSON results to this file",
)
def run(config_path, names, output):
    """Run scenarios and print a summary"""
    config = load_config(config_path)
    try:
        scenarios = select(names)
    except KeyError as e:
        click.echo(f"Error: {e.args[0]}")
        click.echo(f"Available scenarios: {', '.join(s.name for s in SCENARIOS)}")
        sys.exit(2)

    click.echo("=" * 60)
    click.echo("Filesystem Conformance Run")
    click.echo("=" * 60)
    if gate.is_enabled(config):
        click.echo(f"Target: {config.get('s3_test_uri')}")
    else:
        click.echo(f"Gate closed: {gate.disabled_reason(config)}")
    click.echo("")

    report = ScenarioRunner(config).run(scenarios)

    for result in report.results.values():
        line = f"  [{STATUS_MARKS[result.outcome]}] {result.name:36} {result.duration:7.2f}s"
        if result.reason:
            line += f"  {result.reason}"
        click.echo(line)

    summary = report.to_dict()
    click.echo("")
    click.echo(
        f"Total: {summary['total']}, Passed: {summary['passed']}, "
        f"Failed: {summary['failed']}, Skipped: {summary['skipped']}"
    )
    click.echo(f"Total Duration: {summary['total_duration']:.2f}s")

    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(summary, f, indent=2)
        click.echo(f"Results saved to: {path}")

    sys.exit(0 if report.ok else 1)


if __name__ == "__main__":
    main()
