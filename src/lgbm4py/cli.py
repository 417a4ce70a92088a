"""Command line interface for inspecting and scoring LightGBM models."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from lgbm4py.booster import Booster
from lgbm4py.errors import NativeCallError, NativeLibraryError
from lgbm4py.library import NativeAPI, find_lib_path, get_api, is_native_loaded
from lgbm4py.types import FeatureImportanceType, PredictionType

app = typer.Typer(
    name="lgbm4py",
    help="Inspect and score LightGBM models through the native C API.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log native calls at DEBUG level.")] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _api_or_exit() -> NativeAPI:
    try:
        return get_api()
    except NativeLibraryError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from None


def _open_model(model: Path) -> Booster:
    api = _api_or_exit()
    try:
        return Booster.create_from_modelfile(model, api=api)
    except NativeCallError as e:
        err_console.print(f"[red]Cannot load model {model}: {e.message}[/red]")
        raise typer.Exit(1) from None


@app.command()
def info() -> None:
    """Show where the native library is loaded from."""
    table = Table(title="Native Library")
    table.add_column("Candidate", style="cyan")
    table.add_column("Status", style="green")

    candidates = find_lib_path()
    if not candidates:
        console.print("[red]No LightGBM shared library found[/red]")
        raise typer.Exit(1)

    try:
        api = get_api()
    except NativeLibraryError as e:
        api = None
        err_console.print(f"[red]{e}[/red]")

    for path in candidates:
        loaded = api is not None and api.path == path
        table.add_row(str(path), "[green]Loaded[/green]" if loaded else "-")

    console.print(table)
    if not is_native_loaded():
        raise typer.Exit(1)


@app.command()
def inspect(
    model: Annotated[Path, typer.Argument(help="LightGBM model file.")],
) -> None:
    """Show iterations and features of a model."""
    with _open_model(model) as booster:
        try:
            num_feature = booster.get_num_feature()
            names = booster.get_feature_names()
        except NativeCallError as e:
            err_console.print(f"[red]{e}[/red]")
            raise typer.Exit(1) from None

        console.print(f"[bold]{model}[/bold]")
        console.print(f"  Iterations: {booster.iterations}")
        console.print(f"  Features: {num_feature}")

    table = Table(title="Features")
    table.add_column("Index", style="yellow", justify="right")
    table.add_column("Name", style="cyan")
    for i, name in enumerate(names):
        table.add_row(str(i), name)
    console.print(table)


@app.command()
def predict(
    model: Annotated[Path, typer.Argument(help="LightGBM model file.")],
    input_file: Annotated[Path, typer.Argument(help="Numeric matrix, one row per line.")],
    prediction_type: Annotated[
        PredictionType,
        typer.Option("--type", "-t", help="Prediction type."),
    ] = PredictionType.NORMAL,
    delimiter: Annotated[str, typer.Option("--delimiter", "-d", help="Column delimiter.")] = ",",
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write predictions to this file instead of stdout."),
    ] = None,
) -> None:
    """Score a delimited numeric matrix."""
    try:
        features = np.loadtxt(input_file, delimiter=delimiter, ndmin=2, dtype=np.float64)
    except (OSError, ValueError) as e:
        err_console.print(f"[red]Cannot read {input_file}: {e}[/red]")
        raise typer.Exit(1) from None

    with _open_model(model) as booster:
        try:
            result = booster.predict(features, prediction_type)
        except NativeCallError as e:
            err_console.print(f"[red]{e}[/red]")
            raise typer.Exit(1) from None

    if output:
        np.savetxt(output, np.atleast_1d(result), delimiter=",", fmt="%.17g")
        console.print(f"[green]Predictions saved to {output}[/green]")
        return

    for row in np.atleast_2d(result.reshape(features.shape[0], -1)):
        console.print(",".join(f"{v:.17g}" for v in row))


@app.command()
def importance(
    model: Annotated[Path, typer.Argument(help="LightGBM model file.")],
    importance_type: Annotated[
        FeatureImportanceType,
        typer.Option("--type", "-t", help="Importance measure."),
    ] = FeatureImportanceType.SPLIT,
    iterations: Annotated[
        int,
        typer.Option("--iterations", "-n", help="Iterations to account for; 0 means all."),
    ] = 0,
) -> None:
    """Show feature importance of a model."""
    with _open_model(model) as booster:
        try:
            names = booster.get_feature_names()
            values = booster.feature_importance(iterations, importance_type)
        except NativeCallError as e:
            err_console.print(f"[red]{e}[/red]")
            raise typer.Exit(1) from None

    table = Table(title=f"Feature Importance ({importance_type.value})")
    table.add_column("Feature", style="cyan")
    table.add_column("Importance", style="green", justify="right")
    for i in np.argsort(-values, kind="stable"):
        table.add_row(names[i], f"{values[i]:g}")
    console.print(table)


def main() -> None:
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
