"""Tests for the refinement-cycle renumbering experiment."""

import warnings
from pathlib import Path

import mlflow
import numpy as np
import pytest
from hydra import compose, initialize_config_dir
from hydra.utils import instantiate
from mlflow.tracking import MlflowClient

from experiment import Parameters, RenumberingExperiment
from experiment.tracking import run_tracked, setup_mlflow
from multigrid.errors import ConsistencyMismatch, TransferOrderDependenceWarning

CONF_DIR = Path(__file__).parent.parent.parent / "conf"


class TestRenumberingExperiment:
    """Tests for RenumberingExperiment."""

    def test_six_cycles(self):
        experiment = RenumberingExperiment()
        with warnings.catch_warnings():
            warnings.simplefilter("error", TransferOrderDependenceWarning)
            metrics = experiment.run()

        assert len(metrics) == 6
        assert [m.n_levels for m in metrics] == [3, 4, 5, 6, 7, 8]
        assert all(m.n_mismatches == 0 for m in metrics)
        assert all(m.order_independent for m in metrics)
        assert not any(m.used_global_fallback for m in metrics)
        assert experiment.numbering.n_dofs(0) == experiment.fe.dofs_per_cell == 8

    def test_level_vectors_hold_component_pattern(self):
        experiment = RenumberingExperiment(n_cycles=2)
        metrics = experiment.run()
        for level in metrics[-1].levels:
            n = level.n_dofs
            # Half the DoFs hold 1, half hold 2
            assert level.norm_u == pytest.approx(np.sqrt(n / 2 * 1.0 + n / 2 * 4.0))
            assert level.norm_u == level.norm_v
            assert level.norm_difference == 0.0

    @pytest.mark.parametrize("renumbering", ["cuthill_mckee", "random", "none"])
    def test_other_renumberings(self, renumbering):
        experiment = RenumberingExperiment(renumbering=renumbering, n_cycles=3, seed=5)
        metrics = experiment.run()
        assert all(m.n_mismatches == 0 for m in metrics)

    def test_quadratic_element(self):
        experiment = RenumberingExperiment(degree=2, n_cycles=3)
        metrics = experiment.run()
        assert experiment.numbering.n_dofs(0) == 18
        assert metrics[-1].n_levels == 5

    def test_global_fallback(self):
        # No vertex of [1, 3]^2 is near the origin
        experiment = RenumberingExperiment(domain=(1.0, 3.0), n_cycles=2)
        metrics = experiment.run()
        assert all(m.used_global_fallback for m in metrics)
        assert metrics[-1].n_active_cells == 64

    def test_numbering_dependent_vector_fails(self, monkeypatch):
        def by_index(numbering):
            return np.arange(numbering.n_dofs(), dtype=float)

        monkeypatch.setattr("experiment.renumbering_check.initialize_by_component", by_index)
        experiment = RenumberingExperiment(renumbering="random", n_cycles=1, check_prolongation=False)
        with pytest.raises(ConsistencyMismatch) as excinfo:
            experiment.run()
        assert len(excinfo.value.mismatches) > 0
        assert len(experiment.metrics) == 1

    def test_metrics_dataframe(self):
        experiment = RenumberingExperiment(n_cycles=1)
        metrics = experiment.run()
        df = metrics[0].to_dataframe()
        assert len(df) == metrics[0].n_levels
        assert {"cycle", "level", "n_dofs", "norm_u", "norm_v", "norm_difference"} <= set(df.columns)

    def test_gnuplot_output(self, tmp_path):
        experiment = RenumberingExperiment(n_cycles=1, output_dir=str(tmp_path), write_gnuplot=True)
        experiment.run()
        assert sorted(p.name for p in tmp_path.glob("*.gpl")) == ["mg-0.gpl", "mg-1.gpl", "mg-2.gpl"]

    def test_parameters_dataframe(self):
        df = Parameters(degree=2).to_dataframe()
        assert df["degree"].iloc[0] == 2
        assert df["renumbering"].iloc[0] == "component_wise"

    @pytest.mark.parametrize("n_cycles", [0, -1, 1.5])
    def test_invalid_cycle_count(self, n_cycles):
        with pytest.raises(ValueError):
            Parameters(n_cycles=n_cycles)
        with pytest.raises(ValueError):
            RenumberingExperiment(n_cycles=n_cycles)


class TestTracking:
    """Tests for MLflow logging of experiment runs."""

    @pytest.fixture
    def tracking(self, tmp_path):
        name = setup_mlflow((tmp_path / "mlruns").as_uri(), "renumbering-tests")
        yield name
        if mlflow.active_run() is not None:
            mlflow.end_run()

    def test_parameters_to_mlflow(self):
        params = Parameters(domain=(1.0, 3.0)).to_mlflow()
        assert params["domain"] == "1.0,3.0"
        assert params["renumbering"] == "component_wise"
        assert "output_dir" not in params
        assert all(isinstance(v, str) for v in params.values())

    def test_cycle_metrics_to_mlflow(self):
        metrics = RenumberingExperiment(n_cycles=1).run()[0].to_mlflow()
        assert metrics["n_levels"] == 3.0
        assert metrics["n_mismatches"] == 0.0
        assert metrics["order_independent"] == 1.0
        assert metrics["level_0/n_dofs"] == 8.0
        assert metrics["level_2/norm_difference"] == 0.0

    def test_run_is_logged(self, tracking, tmp_path):
        output_dir = tmp_path / "out"
        experiment = RenumberingExperiment(
            n_cycles=2, output_dir=str(output_dir), write_gnuplot=True
        )
        run_id = run_tracked(experiment, output_dir, config={"experiment": {"n_cycles": 2}})

        run = mlflow.get_run(run_id)
        assert run.info.status == "FINISHED"
        assert run.data.params["n_cycles"] == "2"
        assert run.data.metrics["total_mismatches"] == 0.0

        history = MlflowClient().get_metric_history(run_id, "n_levels")
        assert sorted((m.step, m.value) for m in history) == [(0, 3.0), (1, 4.0)]

        artifacts = {a.path for a in MlflowClient().list_artifacts(run_id)}
        assert {"results.csv", "parameters.csv", "config.yaml", "levels"} <= artifacts
        levels = {a.path for a in MlflowClient().list_artifacts(run_id, "levels")}
        assert "levels/mg-0.gpl" in levels
        assert (output_dir / "results.csv").exists()

    def test_failed_run_is_logged(self, tracking, tmp_path, monkeypatch):
        def by_index(numbering):
            return np.arange(numbering.n_dofs(), dtype=float)

        monkeypatch.setattr("experiment.renumbering_check.initialize_by_component", by_index)
        experiment = RenumberingExperiment(renumbering="random", n_cycles=1, check_prolongation=False)
        with pytest.raises(ConsistencyMismatch):
            run_tracked(experiment, tmp_path, run_name="failing")

        runs = mlflow.search_runs(experiment_names=[tracking])
        failed = runs[runs["tags.mlflow.runName"] == "failing"]
        assert list(failed["status"]) == ["FAILED"]
        assert failed["metrics.n_mismatches"].iloc[0] > 0
        assert (tmp_path / "results.csv").exists()


class TestConfig:
    """Tests for the Hydra configuration."""

    @pytest.mark.parametrize("name", ["component_wise", "cuthill_mckee", "random", "quadratic"])
    def test_compose_and_run(self, name):
        with initialize_config_dir(config_dir=str(CONF_DIR.resolve()), version_base=None):
            cfg = compose(
                config_name="config",
                overrides=[f"experiment={name}", "experiment.n_cycles=1"],
            )
        experiment = instantiate(cfg.experiment, _convert_="partial")
        assert isinstance(experiment, RenumberingExperiment)
        assert experiment.params.renumbering == ("component_wise" if name == "quadratic" else name)
        metrics = experiment.run()
        assert metrics[0].n_mismatches == 0
