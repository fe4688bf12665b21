"""
Multilevel transfer renumbering check - Hydra entry point.

Usage:
    uv run python main.py
    uv run python main.py experiment=cuthill_mckee
    uv run python main.py experiment=random experiment.seed=3
    uv run python main.py -m experiment=component_wise,cuthill_mckee,random,quadratic
"""

import logging
import sys
import warnings
from pathlib import Path

import hydra
from hydra.core.hydra_config import HydraConfig
from hydra.utils import instantiate
from omegaconf import DictConfig, OmegaConf

sys.path.insert(0, str(Path(__file__).parent / "src"))

from experiment.tracking import run_tracked, setup_mlflow  # noqa: E402
from multigrid.errors import ConsistencyMismatch, TransferOrderDependenceWarning  # noqa: E402

log = logging.getLogger(__name__)


@hydra.main(config_path="conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Main entry point."""
    output_dir = Path(HydraConfig.get().runtime.output_dir)
    log.info(f"Renumbering: {cfg.experiment.renumbering}, degree={cfg.experiment.degree}, "
             f"components={cfg.experiment.n_components}")
    log.info(f"MLflow experiment: {setup_mlflow(cfg.mlflow.tracking_uri, cfg.experiment_name)}")
    log.debug(OmegaConf.to_yaml(cfg))

    if cfg.strict_order_independence:
        warnings.simplefilter("error", TransferOrderDependenceWarning)

    experiment = instantiate(cfg.experiment, output_dir=str(output_dir), _convert_="partial")

    try:
        run_id = run_tracked(
            experiment,
            output_dir,
            config=OmegaConf.to_container(cfg, resolve=True),
            results_file=cfg.results_file,
        )
    except ConsistencyMismatch as exc:
        log.error(f"Consistency check failed: {exc}")
        raise

    metrics = experiment.metrics
    log.info(f"Done (run {run_id[:8]}): {len(metrics)} cycles, {metrics[-1].n_levels} levels, "
             f"{metrics[-1].n_active_dofs} active DoFs, no mismatches")


if __name__ == "__main__":
    main()
