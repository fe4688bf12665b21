"""
Level Vector Plots.

Scatter plots of level vectors at their support points, one figure per level
with one panel per component.
"""

import logging
from pathlib import Path
from typing import List

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from dofs.numbering import DoFNumbering
from multigrid.level_object import MGLevelObject

from . import style  # noqa: F401

log = logging.getLogger(__name__)


def level_vector_dataframe(
    numbering: DoFNumbering, vectors: MGLevelObject, level: int
) -> pd.DataFrame:
    """Support points, components and values of one level vector."""
    points = numbering.support_points(level)
    return pd.DataFrame(
        {
            "x": points[:, 0],
            "y": points[:, 1],
            "component": numbering.dof_components(level),
            "value": vectors[level],
        }
    )


def plot_level_vectors(
    numbering: DoFNumbering,
    vectors: MGLevelObject,
    output_dir: Path,
    prefix: str = "mg",
) -> List[Path]:
    """Plot every level vector and return the written files."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    n_components = numbering.fe.n_components

    paths = []
    for level in vectors:
        df = level_vector_dataframe(numbering, vectors, level)

        fig, axes = plt.subplots(1, n_components, figsize=(4.5 * n_components, 4), squeeze=False)
        for component, ax in enumerate(axes[0]):
            sns.scatterplot(
                data=df[df["component"] == component],
                x="x",
                y="y",
                hue="value",
                palette="viridis",
                ax=ax,
            )
            ax.set_title(f"Level {level}, component {component}")
            ax.set_aspect("equal")

        plt.tight_layout()
        output_path = output_dir / f"{prefix}-{level}.pdf"
        fig.savefig(output_path, dpi=300, bbox_inches="tight")
        plt.close(fig)
        paths.append(output_path)

    log.info(f"Saved {len(paths)} level plot(s) to {output_dir}")
    return paths
