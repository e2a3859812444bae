"""Command-line interface for modelhub."""

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from modelhub.config.settings import PlatformConfig
    from modelhub.modeling.artifact import ModelArtifact

app = typer.Typer(
    name="modelhub",
    help="Train tabular models and serve predictions from stored artifacts.",
    no_args_is_help=True,
)

console = Console(stderr=True)


def _load_platform_config(config: Path | None) -> "PlatformConfig":
    """Load a config file (or defaults) and configure logging from it."""
    from modelhub.config.loader import load_config
    from modelhub.config.settings import PlatformConfig
    from modelhub.utils.logging import configure_from_settings

    platform_config = load_config(config) if config is not None else PlatformConfig()
    configure_from_settings(platform_config.logging)
    return platform_config


def _model_table(artifact: "ModelArtifact", location: str) -> Table:
    table = Table(title=f"Model {location}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Algorithm", artifact.algorithm_name)
    table.add_row("Algorithm class", artifact.algorithm_class.value)
    table.add_row("Response variable", artifact.response_variable or "-")
    table.add_row("Input width", str(artifact.input_width))
    table.add_row("Index map (new -> old)", str(list(artifact.new_to_old)))
    table.add_row("Normalization", "Yes" if artifact.normalization else "No")
    table.add_row("Training rows", str(artifact.summary.n_train))
    table.add_row("Test rows", str(artifact.summary.n_test))
    for name, value in artifact.summary.metrics.items():
        table.add_row(f"Metric: {name}", f"{value:.4f}")
    table.add_row("Created", artifact.created_at)
    return table


@app.command()
def train(
    config: Annotated[
        Path,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration YAML file with a workflow section.",
            exists=True,
            dir_okay=False,
        ),
    ],
    data: Annotated[
        Path,
        typer.Option(
            "--data",
            "-d",
            help="Path to the training dataset (delimited text).",
            exists=True,
            dir_okay=False,
        ),
    ],
    output: Annotated[
        str,
        typer.Option(
            "--output",
            "-o",
            help="Location key to store the model at, e.g. registry:/models/churn.",
        ),
    ],
) -> None:
    """Train a model and store the artifact."""
    from modelhub.exceptions import ModelHubError
    from modelhub.modeling.builder import ModelBuilder
    from modelhub.preprocessing.tokenizer import FileLines
    from modelhub.serving.repository import ModelRepository
    from modelhub.storage.adapters import StorageResolver

    try:
        platform_config = _load_platform_config(config)
        workflow = platform_config.require_workflow()
        console.print(f"[blue]Training {workflow.algorithm_name} on {data}[/blue]")

        artifact = ModelBuilder(platform_config).build(FileLines(data))
        repository = ModelRepository(StorageResolver.from_config(platform_config.storage))
        stored = repository.save(artifact, output)
    except ModelHubError as e:
        console.print(f"[red]Training failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print()
    console.print(_model_table(artifact, stored))
    console.print(f"\n[green]Saved to: {stored}[/green]")


@app.command()
def predict(
    input_path: Annotated[
        Path,
        typer.Option(
            "--input",
            "-i",
            help="CSV file with one request row per line and a header row.",
            exists=True,
            dir_okay=False,
        ),
    ],
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Configuration YAML file; its serving section defines the bindings.",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    model: Annotated[
        str | None,
        typer.Option(
            "--model",
            "-m",
            help="Model location key; overrides serving.model_location.",
        ),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Output CSV path. Predictions are written to stdout if omitted.",
        ),
    ] = None,
    percentile: Annotated[
        float | None,
        typer.Option(
            "--percentile",
            "-p",
            help="Anomaly percentile in (0, 100]; overrides serving.percentile.",
        ),
    ] = None,
    skip_bad_rows: Annotated[
        bool,
        typer.Option(
            "--skip-bad-rows",
            help="Report rows that cannot be encoded instead of failing the batch.",
        ),
    ] = False,
) -> None:
    """Predict for a CSV of request rows."""
    import pandas as pd

    from modelhub.config.settings import BindingSpec, RowErrorPolicy, ServingConfig
    from modelhub.exceptions import ModelHubError
    from modelhub.schemas.output import PredictionOutputSchema
    from modelhub.serving.service import PredictionService
    from modelhub.storage.adapters import StorageResolver

    frame = pd.read_csv(input_path, dtype=str, keep_default_na=False)
    contexts = frame.to_dict(orient="records")

    try:
        platform_config = _load_platform_config(config)
        base = platform_config.serving
        location = model or (base.model_location if base is not None else None)
        if location is None:
            console.print("[red]Error: pass --model or configure serving.model_location[/red]")
            raise typer.Exit(code=1)

        bindings = base.features if base is not None and base.features else [
            BindingSpec(name=column, expression=column) for column in frame.columns
        ]
        update = {
            "model_location": location,
            "features": bindings,
            "row_error_policy": RowErrorPolicy.FAIL_ROW if skip_bad_rows else (
                base.row_error_policy if base is not None else RowErrorPolicy.FAIL_BATCH
            ),
        }
        serving = base.model_copy(update=update) if base is not None else ServingConfig(**update)

        service = PredictionService.from_storage(
            serving, StorageResolver.from_config(platform_config.storage)
        )
        predictions = service.predict_many(contexts, percentile)
    except ModelHubError as e:
        console.print(f"[red]Prediction failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    records = []
    for prediction in predictions:
        record = {"row": prediction.row, "prediction": prediction.value}
        if prediction.decision is not None:
            record["is_anomaly"] = prediction.decision.is_anomaly
            record["threshold"] = prediction.decision.threshold
        if skip_bad_rows:
            record["error"] = None if prediction.ok else str(prediction.error)
        records.append(record)

    columns = ["row", "prediction"]
    if any(p.decision is not None for p in predictions):
        columns += ["is_anomaly", "threshold"]
    if skip_bad_rows:
        columns.append("error")
    result = PredictionOutputSchema.validate(pd.DataFrame.from_records(records, columns=columns))

    n_failed = sum(1 for p in predictions if not p.ok)
    if n_failed:
        console.print(f"[yellow]{n_failed} of {len(predictions)} rows failed[/yellow]")

    if output is not None:
        result.to_csv(output, index=False)
        console.print(f"[green]Wrote {len(result)} predictions to {output}[/green]")
    else:
        typer.echo(result.to_csv(index=False), nl=False)


@app.command()
def inspect(
    model: Annotated[
        str,
        typer.Option(
            "--model",
            "-m",
            help="Model location key.",
        ),
    ],
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Configuration YAML file with storage roots.",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
) -> None:
    """Show a stored model's features, response variable and algorithm."""
    from modelhub.exceptions import ModelHubError
    from modelhub.serving.repository import ModelRepository
    from modelhub.storage.adapters import StorageResolver

    try:
        platform_config = _load_platform_config(config)
        repository = ModelRepository(StorageResolver.from_config(platform_config.storage))
        artifact = repository.load(model)
    except ModelHubError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(_model_table(artifact, model))

    slots = {old: new for new, old in enumerate(artifact.new_to_old)}
    features = Table(title="Features")
    features.add_column("Name", style="cyan")
    features.add_column("Index")
    features.add_column("Slot")
    features.add_column("Type")
    features.add_column("Categories")
    for feature in artifact.features:
        if feature.index == artifact.response_index:
            slot = "response"
        else:
            slot = str(slots[feature.index]) if feature.index in slots else "-"
        categories = artifact.encodings.get(feature.name)
        features.add_row(
            feature.name,
            str(feature.index),
            slot,
            feature.type.value,
            str(len(categories)) if categories is not None else "-",
        )
    console.print(features)


@app.command()
def version() -> None:
    """Show version information."""
    from modelhub import __version__

    console.print(f"modelhub version {__version__}")


if __name__ == "__main__":
    app()
