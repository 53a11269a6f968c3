"""Typer CLI for Armsmith developer commands."""

import json
from pathlib import Path
from typing import Optional

import typer

from armsmith.ab.traffic import hash_bucket, is_included
from armsmith.autostop.engine import StoppingRuleEngine, default_rules
from armsmith.dx.errors import InvalidConfigurationError
from armsmith.io.config import load_definitions
from armsmith.io.ser import ExperimentData

app = typer.Typer(help="Armsmith CLI - experiment allocation and stopping checks")


@app.command()
def bucket(
    identity: str = typer.Argument(..., help="Subject identity"),
    experiment: str = typer.Option(..., "--experiment", "-e", help="Experiment name"),
    percentage: Optional[int] = typer.Option(None, "--percentage", "-p", help="Rollout percentage (0-100)"),
    seed: Optional[str] = typer.Option(None, "--seed", "-s", help="Allocation seed"),
):
    """Show the hash bucket for an identity and whether a rollout includes it."""
    value = hash_bucket(identity, experiment, seed)
    typer.echo(f"bucket: {value}")
    if percentage is not None:
        included = is_included(identity, experiment, percentage, seed)
        typer.echo(f"included at {percentage}%: {'yes' if included else 'no'}")


@app.command()
def evaluate(
    data_file: Path = typer.Argument(..., help="Path to experiment data JSON file"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Experiment definitions (YAML/JSON) providing stopping options"
    ),
):
    """Evaluate stopping rules against an experiment snapshot."""
    with open(data_file, "r") as f:
        data = ExperimentData.model_validate(json.load(f))

    rules = default_rules()
    if config is not None:
        try:
            definitions = {d.name: d for d in load_definitions(config)}
        except InvalidConfigurationError as e:
            typer.echo(str(e), err=True)
            raise typer.Exit(code=2)
        definition = definitions.get(data.experiment_name)
        if definition is None:
            typer.echo(f"No definition for experiment '{data.experiment_name}' in {config}", err=True)
            raise typer.Exit(code=2)
        rules = definition.stopping.build_rules()

    decision = StoppingRuleEngine(rules).evaluate(data)
    typer.echo(json.dumps(decision.model_dump(), indent=2))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
