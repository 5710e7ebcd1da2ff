"""Factor models."""

from .factor_regression import RegressionFitError, RegressionResult, fit_industries, fit_ols

__all__ = ["RegressionFitError", "RegressionResult", "fit_industries", "fit_ols"]
