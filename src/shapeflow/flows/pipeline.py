from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Any, cast

import boto3
from prefect import flow, get_run_logger, task

from shapeflow.infer import EngineConfig, ShapeInferenceEngine, declared_inputs
from shapeflow.ir import Graph
from shapeflow.parsers import load_graph


@task
def download_from_s3(s3_uri: str) -> Path:
    """
    Download a model from S3 to a temporary file. s3_uri like s3://bucket/key.json
    Requires AWS credentials in environment.
    """
    logger = get_run_logger()
    if not s3_uri.startswith("s3://"):
        raise ValueError("s3_uri must start with s3://")
    _, rest = s3_uri.split("s3://", 1)
    bucket, key = rest.split("/", 1)
    s3 = boto3.client("s3")
    # keep the suffix so the parser registry can pick a parser
    tmp = Path(tempfile.mkstemp(prefix="shapeflow_model_", suffix=Path(key).suffix)[1])
    s3.download_file(bucket, key, str(tmp))
    logger.info(f"Downloaded {s3_uri} to {tmp}")
    return tmp


@task
def parse_model(local_path: Path) -> Graph:
    logger = get_run_logger()
    logger.info(f"Parsing model at {local_path}")
    return load_graph(local_path)


@task
def infer_shapes(graph: Graph, has_end_offset: bool = True) -> dict[str, Any]:
    logger = get_run_logger()
    engine = ShapeInferenceEngine(
        graph, declared_inputs(graph), EngineConfig(has_end_offset=has_end_offset)
    )
    shapes = engine.run()
    logger.info(f"Inferred {len(shapes)} output shapes over {len(graph.nodes)} nodes")
    return engine.report()


@task
def export_results(output_dir: str, results: dict[str, Any]) -> str:
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)
    result_file = out_path / "results.json"
    result_file.write_text(json.dumps(results, indent=2))
    return str(result_file)


@flow(name="shapeflow-shape-inference")
def shape_inference_flow(s3_uri: str, output_dir: str, has_end_offset: bool = True) -> str:
    """
    S3 → parse → infer shapes → export results.json
    """
    path = download_from_s3(s3_uri)
    graph = parse_model(path)
    report = infer_shapes(graph, has_end_offset)
    out = export_results(output_dir, report)
    return cast(str, out)
