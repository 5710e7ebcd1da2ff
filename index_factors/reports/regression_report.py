"""
Regression report generation.

Tabulates a batch of factor-model results and writes them to an output
directory:
- coefficients.csv: one row per model and term
- covariances.json: fit statistics and coefficient covariance per model
- summaries.txt: statsmodels summary text per model, then any failures
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from ..models.factor_regression import RegressionResult

logger = logging.getLogger(__name__)

FRAME_COLS = [
    "model", "term", "coef", "std_err", "t", "p_value",
    "ci_lower", "ci_upper", "nobs", "rsquared",
]


def results_to_frame(results: Dict[str, RegressionResult]) -> pd.DataFrame:
    """
    Stack coefficient tables into one long DataFrame.

    Args:
        results: Regression results keyed by model label

    Returns:
        DataFrame with FRAME_COLS
    """
    frames = []
    for label, result in results.items():
        table = result.coefficient_table().reset_index()
        table.insert(0, "model", label)
        table["nobs"] = result.nobs
        table["rsquared"] = result.rsquared
        frames.append(table)

    if not frames:
        return pd.DataFrame(columns=FRAME_COLS)
    return pd.concat(frames, ignore_index=True)[FRAME_COLS]


def save_results(
    results: Dict[str, RegressionResult],
    failures: Optional[Dict[str, str]] = None,
    output_dir: Optional[Path] = None,
) -> Dict[str, Path]:
    """
    Write regression results to disk.

    Args:
        results: Regression results keyed by model label
        failures: Failure messages keyed by model label
        output_dir: Directory to write into (created if needed)

    Returns:
        Dict of file role -> written path
    """
    from ..config import RESULTS_DIR

    output_dir = Path(output_dir) if output_dir else RESULTS_DIR
    output_dir.mkdir(parents=True, exist_ok=True)
    failures = failures or {}

    paths = {}

    coef_path = output_dir / "coefficients.csv"
    results_to_frame(results).to_csv(coef_path, index=False)
    paths["coefficients"] = coef_path

    cov_path = output_dir / "covariances.json"
    payload = {label: result.to_dict() for label, result in results.items()}
    with open(cov_path, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    paths["covariances"] = cov_path

    summary_path = output_dir / "summaries.txt"
    with open(summary_path, "w") as f:
        for label, result in results.items():
            f.write(f"{'=' * 78}\n{label}\n{'=' * 78}\n")
            f.write(result.summary)
            f.write("\n\n")
        if failures:
            f.write("FAILED MODELS\n")
            for label, message in failures.items():
                f.write(f"  - {label}: {message}\n")
    paths["summaries"] = summary_path

    logger.info(f"Saved {len(results)} regression results to {output_dir}")
    return paths
