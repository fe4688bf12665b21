"""
Gnuplot output of level vectors.

Writes one file per level, each cell as a patch of sample points:
``x y value_0 ... value_{n-1}``, one blank line after each row of points and
two after each patch.
"""

import logging
from pathlib import Path
from typing import List, Sequence, TextIO

import numpy as np

from dofs.numbering import DoFNumbering
from meshing.triangulation import Triangulation
from multigrid.level_object import MGLevelObject
from multigrid.mesh_worker import loop_level, sample_points_worker

log = logging.getLogger(__name__)


def write_gnuplot_patches(
    patches: Sequence[np.ndarray], stream: TextIO, n_subdivisions: int, n_components: int
) -> None:
    """Write sampled cell patches in gnuplot surface format."""
    header = ["x", "y"] + [f"v{c}" for c in range(n_components)]
    stream.write("# " + " ".join(f"<{h}>" for h in header) + "\n")
    row_length = n_subdivisions + 1
    for patch in patches:
        for start in range(0, len(patch), row_length):
            for row in patch[start : start + row_length]:
                stream.write(" ".join(f"{value:.6g}" for value in row) + "\n")
            stream.write("\n")
        stream.write("\n")


def output_gpl(
    triangulation: Triangulation,
    numbering: DoFNumbering,
    vectors: MGLevelObject,
    output_dir: Path,
    renumbered: bool = False,
    n_subdivisions: int = 1,
) -> List[Path]:
    """Write ``mg-<level>.gpl`` (or ``mg_renumbered-<level>.gpl``) per level."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = "mg_renumbered" if renumbered else "mg"

    paths = []
    for level in vectors:
        patches = loop_level(
            triangulation,
            numbering,
            level,
            vectors[level],
            sample_points_worker,
            n_subdivisions=n_subdivisions,
        )
        path = output_dir / f"{prefix}-{level}.gpl"
        with open(path, "w") as f:
            write_gnuplot_patches(patches, f, n_subdivisions, numbering.fe.n_components)
        paths.append(path)

    log.info(f"Wrote {len(paths)} gnuplot file(s) to {output_dir}")
    return paths
