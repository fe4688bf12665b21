"""
Plotting Style Configuration for level-vector plots.

Uses seaborn darkgrid theme with serif fonts.
"""

import logging

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import seaborn as sns  # noqa: E402

log = logging.getLogger(__name__)

plt.rcParams.update(
    {
        "font.family": "serif",
        "axes.labelsize": 12,
        "font.size": 11,
        "legend.fontsize": 10,
        "xtick.labelsize": 10,
        "ytick.labelsize": 10,
    }
)

sns.set_theme(style="darkgrid", rc={"font.family": "serif"})
