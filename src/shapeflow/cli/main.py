from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from shapeflow.errors import InferenceError, ValidationError
from shapeflow.flows.pipeline import shape_inference_flow
from shapeflow.infer import (
    EngineConfig,
    ShapeInferenceEngine,
    declared_inputs,
    parse_input_spec,
)
from shapeflow.parsers import load_graph

app = typer.Typer(help="shapeflow CLI")


@app.command()
def infer(
    model: Path = typer.Argument(..., exists=True, dir_okay=False, help="Graph file (.json or .onnx)"),
    inputs: Optional[list[str]] = typer.Option(
        None,
        "--input",
        "-i",
        help="Concrete input, in graph input order: 2x3, int:5, bool:true, ints:3,4",
    ),
    end_offset: bool = typer.Option(
        True, "--end-offset/--no-end-offset", help="Embedding-bag offsets end with a sentinel"
    ),
    validate: bool = typer.Option(False, "--validate", help="Validate graph structure first"),
    show_map: bool = typer.Option(False, "--show-map", help="Print every value's shape"),
    as_json: bool = typer.Option(False, "--json", help="Print a JSON report"),
) -> None:
    """
    Infer the shape of every graph output.
    """
    try:
        graph = load_graph(model, validate=validate)
        concrete = [parse_input_spec(s) for s in inputs] if inputs else declared_inputs(graph)
        engine = ShapeInferenceEngine(
            graph, concrete, EngineConfig(has_end_offset=end_offset)
        )
        shapes = engine.run()
    except (InferenceError, ValidationError) as exc:
        typer.echo(f"error[{exc.code}]: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if as_json:
        typer.echo(json.dumps(engine.report(), indent=2))
        return
    for name, shape in zip(graph.outputs, shapes):
        typer.echo(f"{name}: {shape}")
    if show_map:
        typer.echo(engine.format_shape_map())


@app.command()
def run(s3_uri: str = typer.Argument(..., help="S3 URI to a graph, e.g. s3://bucket/model.onnx"),
        output_dir: str = typer.Option("./outputs", help="Directory to write results"),
        end_offset: bool = typer.Option(True, "--end-offset/--no-end-offset")) -> None:
    """
    Run the Prefect flow on a model stored in S3.
    """
    result_path = shape_inference_flow(
        s3_uri=s3_uri, output_dir=output_dir, has_end_offset=end_offset
    )
    typer.echo(f"Results written to: {result_path}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
