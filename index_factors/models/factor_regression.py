"""
Fama-French three-factor OLS regressions.

Regresses monthly firm returns on the market premium, size and value
factors, once per industry class and once for the pooled sample, and
reports coefficients, confidence intervals and the coefficient
covariance matrix.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm

from ..config import INDUSTRY_LABELS, REGRESSION

logger = logging.getLogger(__name__)

POOLED = "pooled"


class RegressionFitError(ValueError):
    """Raised when a subsample cannot support an OLS fit."""


@dataclass
class RegressionResult:
    """
    Result of one factor-model regression.

    params, bse, tvalues and pvalues are indexed by term
    ('const' followed by the factors). conf_int has columns
    'lower' and 'upper'; cov_params is term x term.
    """

    label: str
    nobs: int
    params: pd.Series
    bse: pd.Series
    tvalues: pd.Series
    pvalues: pd.Series
    conf_int: pd.DataFrame
    cov_params: pd.DataFrame
    rsquared: float
    rsquared_adj: float
    confidence: float = 0.95
    summary: str = field(default="", repr=False)

    def coefficient_table(self) -> pd.DataFrame:
        """Coefficients with standard errors, t, p and confidence bounds."""
        table = pd.DataFrame({
            "coef": self.params,
            "std_err": self.bse,
            "t": self.tvalues,
            "p_value": self.pvalues,
            "ci_lower": self.conf_int["lower"],
            "ci_upper": self.conf_int["upper"],
        })
        table.index.name = "term"
        return table

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            "label": self.label,
            "nobs": self.nobs,
            "rsquared": self.rsquared,
            "rsquared_adj": self.rsquared_adj,
            "confidence": self.confidence,
            "params": self.params.to_dict(),
            "conf_int": {
                term: [row["lower"], row["upper"]]
                for term, row in self.conf_int.iterrows()
            },
            "cov_params": self.cov_params.to_dict(),
        }


def _label(industry: Optional[int]) -> str:
    if industry is None:
        return POOLED
    return f"{industry} ({INDUSTRY_LABELS.get(industry, 'unknown')})"


def fit_ols(
    rows: pd.DataFrame,
    industry: Optional[int] = None,
    factors: Optional[Sequence[str]] = None,
    dependent: Optional[str] = None,
    confidence: Optional[float] = None,
    industry_col: str = "ffclass",
) -> RegressionResult:
    """
    Fit ret ~ const + mktpre + smb + hml by OLS.

    Args:
        rows: Final analysis table
        industry: Industry class to keep (None for the full sample)
        factors: Regressor columns (default from config)
        dependent: Dependent column (default from config)
        confidence: Confidence level of the intervals (default 0.95)
        industry_col: Column holding the industry class

    Returns:
        RegressionResult

    Raises:
        RegressionFitError: empty subsample, fewer complete observations
            than parameters, or a rank-deficient design matrix
    """
    factors = list(factors or REGRESSION["factors"])
    dependent = dependent or REGRESSION["dependent"]
    confidence = confidence or REGRESSION["confidence"]
    label = _label(industry)

    needed = [dependent] + factors + ([industry_col] if industry is not None else [])
    missing_cols = [c for c in needed if c not in rows.columns]
    if missing_cols:
        raise RegressionFitError(f"{label}: missing columns {missing_cols}")

    sample = rows
    if industry is not None:
        sample = rows.loc[rows[industry_col] == industry]

    if sample.empty:
        raise RegressionFitError(f"{label}: no observations")

    data = sample[[dependent] + factors].apply(pd.to_numeric, errors="coerce").dropna()
    n_params = len(factors) + 1
    if len(data) <= n_params:
        raise RegressionFitError(
            f"{label}: {len(data)} complete observations for {n_params} parameters"
        )

    X = sm.add_constant(data[factors], has_constant="add")
    y = data[dependent]

    rank = np.linalg.matrix_rank(X.to_numpy(dtype=float))
    if rank < X.shape[1]:
        raise RegressionFitError(
            f"{label}: design matrix is rank deficient (rank {rank} < {X.shape[1]})"
        )

    model = sm.OLS(y, X).fit()

    ci = model.conf_int(alpha=1.0 - confidence)
    ci.columns = ["lower", "upper"]

    result = RegressionResult(
        label=label,
        nobs=int(model.nobs),
        params=model.params,
        bse=model.bse,
        tvalues=model.tvalues,
        pvalues=model.pvalues,
        conf_int=ci,
        cov_params=model.cov_params(),
        rsquared=float(model.rsquared),
        rsquared_adj=float(model.rsquared_adj),
        confidence=confidence,
        summary=str(model.summary(title=f"{dependent} on {' + '.join(factors)}: {label}")),
    )

    logger.info(
        f"Fitted {label}: n={result.nobs}, R2={result.rsquared:.4f}, "
        f"beta_mkt={result.params.get(factors[0], np.nan):.4f}"
    )
    return result


def fit_industries(
    rows: pd.DataFrame,
    classes: Optional[Iterable[int]] = None,
    include_pooled: bool = True,
    raise_on_error: bool = False,
    **kwargs,
) -> Tuple[Dict[str, RegressionResult], Dict[str, str]]:
    """
    Fit the factor model for each industry class and the pooled sample.

    Args:
        rows: Final analysis table
        classes: Industry classes to fit (default: all five)
        include_pooled: Also fit the full sample
        raise_on_error: Re-raise the first RegressionFitError instead of
                        recording it
        **kwargs: Passed through to fit_ols

    Returns:
        Tuple of (results by label, failure messages by label)
    """
    classes = list(classes) if classes is not None else list(INDUSTRY_LABELS)
    targets: List[Optional[int]] = list(classes)
    if include_pooled:
        targets.append(None)

    results: Dict[str, RegressionResult] = {}
    failures: Dict[str, str] = {}

    for industry in targets:
        try:
            result = fit_ols(rows, industry=industry, **kwargs)
        except RegressionFitError as e:
            if raise_on_error:
                raise
            logger.error(f"Regression failed: {e}")
            failures[_label(industry)] = str(e)
            continue
        results[result.label] = result

    logger.info(f"Fitted {len(results)} models, {len(failures)} failures")
    return results, failures
