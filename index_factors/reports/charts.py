"""
Chart generation for return distributions.

Creates histograms of monthly returns from the final analysis table.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from ..config import FIGURES_DIR, PLOTS

logger = logging.getLogger(__name__)

TITLE = "Distribution of Monthly Returns"


class ChartGenerator:
    """
    Generates return-distribution histograms.

    Uses matplotlib for chart generation. Charts can be saved
    to disk or displayed interactively. Every method returns the
    matplotlib Figure it drew.

    Example:
        charts = ChartGenerator()
        charts.return_distribution(panel, save_path="returns_1000.png", show=False)
    """

    def __init__(self, output_dir: Optional[Path] = None, style: str = "seaborn-v0_8-white"):
        """
        Initialize the chart generator.

        Args:
            output_dir: Directory for saving charts
            style: Matplotlib style to use
        """
        self.output_dir = Path(output_dir) if output_dir else FIGURES_DIR
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.style = style

    def _setup_style(self):
        """Apply consistent styling."""
        import matplotlib.pyplot as plt

        try:
            plt.style.use(self.style)
        except OSError:
            plt.style.use("default")

    @staticmethod
    def _returns(df: pd.DataFrame, column: str = "ret") -> pd.Series:
        """Finite returns to plot."""
        values = pd.to_numeric(df[column], errors="coerce")
        values = values[np.isfinite(values)]
        if values.empty:
            raise ValueError(f"No finite values in column '{column}' to plot")
        return values

    @staticmethod
    def _caption(df: pd.DataFrame) -> str:
        return f"From {df['date'].min():%Y-%m-%d} to {df['date'].max():%Y-%m-%d}"

    def _finish(self, fig, save_path: Optional[str], show: bool):
        import matplotlib.pyplot as plt

        fig.tight_layout()

        if save_path:
            filepath = self.output_dir / save_path
            fig.savefig(filepath, dpi=300, bbox_inches="tight")
            logger.info(f"Saved chart: {filepath}")

        if show:
            plt.show()
        else:
            plt.close(fig)
        return fig

    def return_distribution(
        self,
        df: pd.DataFrame,
        bins: int = 1000,
        title: str = TITLE,
        save_path: Optional[str] = None,
        show: bool = True,
    ):
        """
        Plot a single fine-bin histogram of monthly returns.

        Args:
            df: Final analysis table with 'ret' and 'date'
            bins: Number of bins
            title: Chart title
            save_path: Path to save (relative to output_dir)
            show: Whether to display the chart

        Returns:
            matplotlib Figure
        """
        import matplotlib.pyplot as plt

        self._setup_style()
        ret = self._returns(df)

        fig, ax = plt.subplots(figsize=(12, 6))
        ax.hist(ret.values, bins=bins, color="#595959")

        fig.suptitle(title, fontsize=14, fontweight="bold")
        ax.set_title(f"Sample: {PLOTS['sample_label']}", fontsize=11)
        ax.set_xlabel("Monthly Returns", fontsize=12)
        ax.set_ylabel("Frequency", fontsize=12)
        fig.text(0.99, 0.01, self._caption(df), ha="right", fontsize=9)

        return self._finish(fig, save_path, show)

    def return_histogram_overlay(
        self,
        df: pd.DataFrame,
        bins: Optional[Sequence[int]] = None,
        title: str = TITLE,
        save_path: Optional[str] = None,
        show: bool = True,
    ):
        """
        Overlay histograms of the same returns at several resolutions.

        Coarser layers are drawn first so the finer ones sit on top. Bins
        span the x limits only; returns outside them are left out.

        Args:
            df: Final analysis table with 'ret' and 'date'
            bins: Bin counts, one layer each (default 100, 250, 1000)
            title: Chart title
            save_path: Path to save
            show: Whether to display

        Returns:
            matplotlib Figure
        """
        import matplotlib.pyplot as plt

        self._setup_style()
        ret = self._returns(df)
        bins = list(bins or PLOTS["bins"])
        colors = PLOTS["overlay_colors"]

        fig, ax = plt.subplots(figsize=(12, 6))
        for i, n in enumerate(bins):
            ax.hist(
                ret.values,
                bins=n,
                range=PLOTS["xlim"],
                color=colors[i % len(colors)],
                label=f"{n} bins",
            )

        ax.set_xlim(*PLOTS["xlim"])
        fig.suptitle(title, fontsize=14, fontweight="bold")
        ax.set_title(f"Sample: {PLOTS['sample_label']}", fontsize=11)
        ax.set_xlabel("Monthly Returns", fontsize=12)
        ax.set_ylabel("Frequency", fontsize=12)
        ax.legend(fontsize=10)
        fig.text(0.99, 0.01, self._caption(df), ha="right", fontsize=9)

        return self._finish(fig, save_path, show)

    def return_histogram_stacked(
        self,
        df: pd.DataFrame,
        bins: Optional[Sequence[int]] = None,
        save_path: Optional[str] = None,
        show: bool = True,
    ):
        """
        One histogram panel per bin count, stacked vertically.

        Args:
            df: Final analysis table with 'ret'
            bins: Bin counts, one panel each (default 100, 250, 1000)
            save_path: Path to save
            show: Whether to display

        Returns:
            matplotlib Figure
        """
        import matplotlib.pyplot as plt

        self._setup_style()
        ret = self._returns(df)
        bins = list(bins or PLOTS["bins"])

        fig, axes = plt.subplots(len(bins), 1, figsize=(10, 3.5 * len(bins)), squeeze=False)
        for ax, n in zip(axes[:, 0], bins):
            ax.hist(ret.values, bins=n, color=PLOTS["stacked_color"])
            ax.set_xlim(*PLOTS["xlim"])
            ax.set_title(f"Bins/Breaks = {n}", fontsize=12, fontweight="bold")
            ax.set_ylabel("Frequency", fontsize=10)

        return self._finish(fig, save_path, show)

    def generate_all(
        self,
        df: pd.DataFrame,
        prefix: str = "",
        show: bool = False,
    ) -> List[Path]:
        """
        Generate all standard charts.

        Args:
            df: Final analysis table
            prefix: Prefix for filenames
            show: Whether to display charts

        Returns:
            List of saved file paths
        """
        paths = []

        finest = max(PLOTS["bins"])
        self.return_distribution(
            df,
            bins=finest,
            save_path=f"{prefix}return_distribution.png",
            show=show,
        )
        paths.append(self.output_dir / f"{prefix}return_distribution.png")

        self.return_histogram_overlay(
            df,
            save_path=f"{prefix}return_histogram_overlay.png",
            show=show,
        )
        paths.append(self.output_dir / f"{prefix}return_histogram_overlay.png")

        self.return_histogram_stacked(
            df,
            save_path=f"{prefix}return_histogram_stacked.png",
            show=show,
        )
        paths.append(self.output_dir / f"{prefix}return_histogram_stacked.png")

        logger.info(f"Generated {len(paths)} charts")
        return paths
