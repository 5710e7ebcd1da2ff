"""Fama-French factor regressions on S&P 500 constituent returns."""

__version__ = "1.0.0"
