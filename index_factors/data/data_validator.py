"""
Data validation utilities for the index-constituent panel.

Provides validation functions to ensure the final analysis table meets
the pipeline's invariants: sample window, return floor, industry classes,
unique firm-months, trading windows and index membership.
"""

import logging
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..config import INDUSTRY_LABELS, PIPELINE, REGRESSION

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["permno", "date", "ret", "retx", "year", "month", "ffclass"]


class DataValidator:
    """
    Validates the analysis panel for quality and completeness.

    Provides checks for:
    - Required columns
    - Data types
    - Return values and the return floor
    - Industry classes
    - Sample window
    - Duplicate firm-months
    - Factor coverage
    """

    def __init__(
        self,
        analysis_start: Optional[str] = None,
        analysis_end: Optional[str] = None,
        return_floor: Optional[float] = None,
    ):
        """
        Initialize the validator.

        Args:
            analysis_start: First allowed date (default from config)
            analysis_end: Last allowed date (default from config)
            return_floor: Minimum allowed return (default from config)
        """
        self.analysis_start = pd.Timestamp(str(analysis_start or PIPELINE["analysis_start"]))
        self.analysis_end = pd.Timestamp(str(analysis_end or PIPELINE["analysis_end"]))
        self.return_floor = PIPELINE["return_floor"] if return_floor is None else return_floor
        self.issues: List[str] = []
        self.warnings: List[str] = []

    def validate_panel(
        self, df: pd.DataFrame, strict: bool = False
    ) -> Tuple[bool, Dict]:
        """
        Validate a panel dataset.

        Args:
            df: Panel DataFrame to validate
            strict: If True, warnings are treated as errors

        Returns:
            Tuple of (is_valid, report_dict)
        """
        self.issues = []
        self.warnings = []

        self._check_required_columns(df)
        if not self.issues:
            self._check_data_types(df)
            self._check_returns(df)
            self._check_industry_classes(df)
            self._check_sample_window(df)
            self._check_duplicates(df)
            self._check_factor_coverage(df)

        is_valid = len(self.issues) == 0
        if strict:
            is_valid = is_valid and len(self.warnings) == 0

        report = {
            "is_valid": is_valid,
            "issues": self.issues,
            "warnings": self.warnings,
            "shape": df.shape,
            "date_range": (
                str(df["date"].min()) if "date" in df.columns else None,
                str(df["date"].max()) if "date" in df.columns else None,
            ),
            "n_firms": df["permno"].nunique() if "permno" in df.columns else 0,
        }

        return is_valid, report

    def _check_required_columns(self, df: pd.DataFrame) -> None:
        """Check for required columns."""
        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            self.issues.append(f"Missing required columns: {missing}")

    def _check_data_types(self, df: pd.DataFrame) -> None:
        """Check data types of key columns."""
        if not pd.api.types.is_datetime64_any_dtype(df["date"]):
            self.issues.append("date is not datetime type")

        for col in ["ret", "retx"] + REGRESSION["factors"]:
            if col in df.columns and not pd.api.types.is_numeric_dtype(df[col]):
                self.issues.append(f"{col} is not numeric type")

    def _check_returns(self, df: pd.DataFrame) -> None:
        """Returns must be present and not below the floor."""
        for col in ["ret", "retx"]:
            n_null = int(df[col].isna().sum())
            if n_null:
                self.issues.append(f"{n_null} rows have missing {col}")

            below = int((df[col] < self.return_floor).sum())
            if below:
                self.issues.append(f"{below} rows have {col} below {self.return_floor}")

        if "ret_status" in df.columns:
            filled = (df["ret_status"] != "valid").mean() if len(df) else 0.0
            if filled > 0.1:
                self.warnings.append(f"{filled:.1%} of returns are filled or invalid")

    def _check_industry_classes(self, df: pd.DataFrame) -> None:
        """Every row must carry one of the known industry classes."""
        unknown = ~df["ffclass"].isin(list(INDUSTRY_LABELS))
        if unknown.any():
            self.issues.append(f"{int(unknown.sum())} rows have an unknown industry class")

    def _check_sample_window(self, df: pd.DataFrame) -> None:
        """Dates must lie inside the analysis window."""
        outside = ~df["date"].between(self.analysis_start, self.analysis_end)
        if outside.any():
            self.issues.append(
                f"{int(outside.sum())} rows fall outside "
                f"{self.analysis_start.date()}..{self.analysis_end.date()}"
            )

    def _check_duplicates(self, df: pd.DataFrame) -> None:
        """Overlapping membership or SIC ranges show up as duplicate firm-months."""
        dups = int(df.duplicated(subset=["permno", "date"]).sum())
        if dups > 0:
            self.warnings.append(f"{dups} duplicate permno-date combinations")

    def _check_factor_coverage(self, df: pd.DataFrame) -> None:
        """Rows without factors are silently excluded from regressions."""
        factors = [f for f in REGRESSION["factors"] if f in df.columns]
        if not factors:
            self.warnings.append("No factor columns in panel")
            return

        missing = df[factors].isna().any(axis=1).mean() if len(df) else 0.0
        if missing > 0:
            self.warnings.append(f"{missing:.1%} of rows have no factor data")

    def check_windows(
        self,
        df: pd.DataFrame,
        headers: pd.DataFrame,
        membership: pd.DataFrame,
        granularity: str = "month",
    ) -> Tuple[bool, Dict]:
        """
        Check that each row lies in its firm's trading window and in at
        least one membership interval.

        Args:
            df: Final analysis table
            headers: Firm headers with permno, begret, endret
            membership: Intervals with permno, begdt, enddt
            granularity: 'month' or 'day', as used when building the panel

        Returns:
            Tuple of (is_compliant, report_dict)
        """
        issues = []
        rows = df[["permno", "date"]].drop_duplicates().reset_index(drop=True)

        windows = rows.merge(
            headers[["permno", "begret", "endret"]].drop_duplicates(),
            on="permno",
            how="left",
        )
        in_window = (windows["date"] >= windows["begret"]) & (windows["date"] <= windows["endret"])
        trading_ok = in_window.groupby([windows["permno"], windows["date"]]).any()
        outside_trading = int((~trading_ok).sum())
        if outside_trading:
            issues.append(f"{outside_trading} firm-months outside the trading window")

        spans = rows.merge(membership[["permno", "begdt", "enddt"]], on="permno", how="left")
        if granularity == "month":
            date = spans["date"].dt.to_period("M")
            lo = spans["begdt"].dt.to_period("M")
            hi = spans["enddt"].dt.to_period("M")
        else:
            date, lo, hi = spans["date"], spans["begdt"], spans["enddt"]
        member = (date >= lo) & (date <= hi)
        member_ok = member.groupby([spans["permno"], spans["date"]]).any()
        outside_index = int((~member_ok).sum())
        if outside_index:
            issues.append(f"{outside_index} firm-months outside every membership interval")

        is_compliant = len(issues) == 0
        return is_compliant, {"is_compliant": is_compliant, "issues": issues}

    def get_data_summary(self, df: pd.DataFrame) -> Dict:
        """
        Get a summary of the dataset.

        Args:
            df: DataFrame to summarize

        Returns:
            Dictionary with summary statistics
        """
        summary = {
            "shape": df.shape,
            "memory_mb": df.memory_usage(deep=True).sum() / 1e6,
        }

        if "permno" in df.columns:
            summary["n_firms"] = df["permno"].nunique()

        if "date" in df.columns:
            summary["date_range"] = (str(df["date"].min()), str(df["date"].max()))
            summary["n_months"] = df["date"].nunique()

        if "ffclass" in df.columns:
            counts = df["ffclass"].value_counts().sort_index()
            summary["industries"] = {
                f"{k} ({INDUSTRY_LABELS.get(int(k), '?')})": int(v) for k, v in counts.items()
            }

        if "ret_status" in df.columns:
            summary["return_status"] = df["ret_status"].value_counts().to_dict()

        if "ret" in df.columns:
            ret = df["ret"].dropna()
            summary["return_stats"] = {
                "mean": ret.mean(),
                "std": ret.std(),
                "min": ret.min(),
                "max": ret.max(),
                "valid_pct": len(ret) / len(df) if len(df) else 0.0,
            }

        missing_pct = df.isnull().mean()
        summary["missing"] = {
            "mean_missing_rate": missing_pct.mean(),
            "cols_complete": int((missing_pct == 0).sum()),
        }

        return summary

    def print_report(self, report: Dict) -> None:
        """Print a validation report to the console."""
        print("\n" + "=" * 60)
        print("DATA VALIDATION REPORT")
        print("=" * 60)

        print(f"\nValid: {report.get('is_valid', 'N/A')}")
        print(f"Shape: {report.get('shape', 'N/A')}")
        print(f"Date Range: {report.get('date_range', 'N/A')}")
        print(f"Firms: {report.get('n_firms', 'N/A')}")

        if report.get("issues"):
            print("\nISSUES:")
            for issue in report["issues"]:
                print(f"  - {issue}")

        if report.get("warnings"):
            print("\nWARNINGS:")
            for warning in report["warnings"]:
                print(f"  - {warning}")

        print("=" * 60)
