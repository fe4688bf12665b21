"""MLflow tracking of renumbering experiment runs.

One MLflow run per experiment: parameters at the start, per-cycle metrics
with ``step=cycle``, and the results table, parameter table and any
gnuplot/PDF output as artifacts. A run that ends in ``ConsistencyMismatch``
still logs everything collected so far and is marked FAILED.
"""

import logging
from pathlib import Path
from typing import Optional

import mlflow
import pandas as pd

from .renumbering_check import RenumberingExperiment

log = logging.getLogger(__name__)

ARTIFACT_PATTERNS = ("*.gpl", "*.pdf")


def setup_mlflow(tracking_uri: str = "./mlruns", experiment_name: str = "mg-renumbering") -> str:
    """Point MLflow at ``tracking_uri`` and select the experiment."""
    mlflow.set_tracking_uri(tracking_uri)
    mlflow.set_experiment(experiment_name)
    return experiment_name


def write_results(experiment: RenumberingExperiment, output_dir: Path, results_file: str) -> Optional[Path]:
    """Write the per-level results of all finished cycles to CSV."""
    if not experiment.metrics:
        return None
    results = pd.concat([m.to_dataframe() for m in experiment.metrics], ignore_index=True)
    path = Path(output_dir) / results_file
    results.to_csv(path, index=False)
    log.info(f"Results written to {path}")
    return path


def run_tracked(
    experiment: RenumberingExperiment,
    output_dir: Path,
    run_name: Optional[str] = None,
    config: Optional[dict] = None,
    results_file: str = "results.csv",
) -> str:
    """Run ``experiment`` inside an MLflow run and return the run id.

    Parameters
    ----------
    experiment : RenumberingExperiment
        Configured experiment, not yet run
    output_dir : Path
        Directory holding the experiment's output files
    run_name : str, optional
        MLflow run name; defaults to ``<renumbering>_Q<degree>``
    config : dict, optional
        Full resolved configuration, stored as ``config.yaml``
    results_file : str
        Name of the results CSV

    Raises
    ------
    ConsistencyMismatch
        Re-raised from the experiment after the partial results are logged
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    params = experiment.params
    if run_name is None:
        run_name = f"{params.renumbering}_Q{params.degree}"

    with mlflow.start_run(run_name=run_name, tags={"renumbering": params.renumbering}) as run:
        mlflow.log_params(params.to_mlflow())
        if config is not None:
            mlflow.log_dict(config, "config.yaml")

        parameters_path = output_dir / "parameters.csv"
        params.to_dataframe().to_csv(parameters_path, index=False)
        mlflow.log_artifact(str(parameters_path))

        try:
            experiment.run()
        finally:
            for metrics in experiment.metrics:
                mlflow.log_metrics(metrics.to_mlflow(), step=metrics.cycle)
            mlflow.log_metric("total_mismatches", float(len(experiment.mismatches)))

            results_path = write_results(experiment, output_dir, results_file)
            if results_path is not None:
                mlflow.log_artifact(str(results_path))
            for pattern in ARTIFACT_PATTERNS:
                for path in sorted(output_dir.glob(pattern)):
                    mlflow.log_artifact(str(path), artifact_path="levels")

        return run.info.run_id
