"""
Panel dataset builder for index-constituent factor regressions.

Builds the monthly firm-date panel restricted to index members:
firms x trading calendar, realized returns, trading windows, membership
intervals, Fama-French industry class (SIC range join) and the monthly
three-factor series. Every step is a set-based pandas merge/filter.

Supports any DataLoader via dependency injection.
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd

from ..config import (
    PIPELINE,
    SENTINEL_CLASS,
    SENTINEL_SIC_BOUND,
    validate_pipeline,
)
from .base_loader import DataLoader

logger = logging.getLogger(__name__)

# Return provenance flags
RET_VALID = "valid"        # Recorded and above the return floor
RET_INVALID = "invalid"    # Recorded but missing, non-numeric or at/below the floor
RET_MISSING = "missing"    # No record for a date inside the trading window

PANEL_KEYS = ["permno", "date"]


class JoinCardinalityError(RuntimeError):
    """Raised when a join would produce more rows than max_panel_rows."""


class PanelBuilder:
    """
    Builds the index-constituent analysis panel.

    The final table has one row per (firm, month) in which the firm was
    trading and an index member, with:
    - ret, retx and the ret_status provenance flag
    - year and month join keys
    - ffclass (Fama-French industry class)
    - mktpre, smb, hml, rf factor values

    Usage:
        builder = PanelBuilder(data_dir="data/stock_data")
        panel = builder.build()

        # Explicit loader and policies
        builder = PanelBuilder(loader=my_loader, missing_returns="drop")
        panel = builder.build()
    """

    def __init__(
        self,
        loader: Optional[DataLoader] = None,
        data_dir: Optional[Path] = None,
        analysis_start: Optional[str] = None,
        analysis_end: Optional[str] = None,
        return_floor: Optional[float] = None,
        missing_returns: Optional[str] = None,
        membership_granularity: Optional[str] = None,
        duplicate_policy: Optional[str] = None,
        industry_scheme: Optional[int] = None,
        max_panel_rows: Optional[int] = None,
    ):
        """
        Initialize the panel builder.

        Args:
            loader: DataLoader instance (defaults to CompositeLoader over data_dir)
            data_dir: Directory with the CRSP CSV extracts
            analysis_start: First date of the sample period (default from config)
            analysis_end: Last date of the sample period (default from config)
            return_floor: ret/retx at or below this are treated as data errors
            missing_returns: 'zero' to fill missing returns with 0, 'drop' to remove them
            membership_granularity: 'month' or 'day' comparison against membership intervals
            duplicate_policy: 'warn', 'drop' or 'raise' for duplicate (permno, date) rows
            industry_scheme: ind_def value of the industry classification
            max_panel_rows: Upper bound on rows produced by any join
        """
        if loader is not None:
            self.loader = loader
        else:
            from .composite_loader import CompositeLoader
            self.loader = CompositeLoader(data_dir)

        overrides = {
            "analysis_start": analysis_start,
            "analysis_end": analysis_end,
            "return_floor": return_floor,
            "missing_returns": missing_returns,
            "membership_granularity": membership_granularity,
            "duplicate_policy": duplicate_policy,
            "industry_scheme": industry_scheme,
            "max_panel_rows": max_panel_rows,
        }
        settings = {**PIPELINE, **{k: v for k, v in overrides.items() if v is not None}}
        validate_pipeline(settings)

        self.analysis_start = pd.Timestamp(str(settings["analysis_start"]))
        self.analysis_end = pd.Timestamp(str(settings["analysis_end"]))
        self.return_floor = float(settings["return_floor"])
        self.missing_returns = settings["missing_returns"]
        self.membership_granularity = settings["membership_granularity"]
        self.duplicate_policy = settings["duplicate_policy"]
        self.industry_scheme = int(settings["industry_scheme"])
        self.max_panel_rows = int(settings["max_panel_rows"])

        # Row counts per step of the last build, for diagnostics
        self.stats: Dict[str, Any] = {}

        logger.info(
            f"PanelBuilder initialized with data_source={self.loader.get_source_name()}, "
            f"window={self.analysis_start.date()}..{self.analysis_end.date()}, "
            f"missing_returns={self.missing_returns}, "
            f"membership_granularity={self.membership_granularity}"
        )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _check_cardinality(self, n_rows: int, step: str) -> None:
        """Refuse to materialise a join larger than max_panel_rows."""
        if n_rows > self.max_panel_rows:
            raise JoinCardinalityError(
                f"{step} would produce {n_rows:,} rows "
                f"(limit {self.max_panel_rows:,}); narrow the inputs or raise max_panel_rows"
            )

    def _handle_duplicates(self, df: pd.DataFrame, step: str) -> pd.DataFrame:
        """Apply the duplicate policy to repeated (permno, date) rows."""
        dup = df.duplicated(subset=PANEL_KEYS, keep="first")
        n_dup = int(dup.sum())
        self.stats[f"{step}_duplicates"] = n_dup
        if n_dup == 0:
            return df

        if self.duplicate_policy == "raise":
            raise ValueError(f"{step}: {n_dup} duplicate (permno, date) rows")
        if self.duplicate_policy == "drop":
            logger.warning(f"{step}: dropped {n_dup} duplicate (permno, date) rows")
            return df.loc[~dup].reset_index(drop=True)

        logger.warning(f"{step}: {n_dup} duplicate (permno, date) rows kept")
        return df

    # ------------------------------------------------------------------
    # Panel construction
    # ------------------------------------------------------------------

    def screen_returns(self, returns: pd.DataFrame) -> pd.DataFrame:
        """
        Flag return records as valid or invalid.

        A record is valid when both ret and retx are present and above the
        return floor. Invalid records keep their row (so the month is not
        mistaken for a non-trading month) but lose their values.

        Args:
            returns: DataFrame with permno, date, ret, retx

        Returns:
            Copy with ret_status and invalid values set to NaN
        """
        out = returns[["permno", "date", "ret", "retx"]].copy()

        dup = out.duplicated(subset=PANEL_KEYS, keep="first")
        if dup.any():
            logger.warning(f"Return file has {int(dup.sum())} repeated (permno, date) records, keeping first")
            out = out.loc[~dup].copy()

        valid = (out["ret"] > self.return_floor) & (out["retx"] > self.return_floor)
        out["ret_status"] = np.where(valid, RET_VALID, RET_INVALID)
        out.loc[~valid, ["ret", "retx"]] = np.nan

        n_invalid = int((~valid).sum())
        self.stats["returns_invalid"] = n_invalid
        logger.info(
            f"Screened {len(out)} return records: {n_invalid} invalid "
            f"(missing or <= {self.return_floor})"
        )
        return out.reset_index(drop=True)

    def build_firm_dates(
        self, headers: pd.DataFrame, calendar: pd.DataFrame
    ) -> pd.DataFrame:
        """
        Cross every distinct firm with every trading date.

        Args:
            headers: Firm header DataFrame
            calendar: DataFrame with a 'date' column

        Returns:
            Firm x date DataFrame with the header columns and 'date'
        """
        firms = headers.drop_duplicates().reset_index(drop=True)
        dates = calendar[["date"]].drop_duplicates().sort_values("date")

        n_rows = len(firms) * len(dates)
        logger.info(
            f"Crossing {len(firms)} firms with {len(dates)} trading dates ({n_rows:,} rows)"
        )
        self._check_cardinality(n_rows, "Firm x calendar cross join")

        firm_dates = firms.merge(dates, how="cross")
        self.stats["firm_dates"] = len(firm_dates)
        return firm_dates

    def attach_returns(
        self, firm_dates: pd.DataFrame, returns: pd.DataFrame
    ) -> pd.DataFrame:
        """
        Restrict to each firm's trading window and attach realized returns.

        Args:
            firm_dates: Output of build_firm_dates()
            returns: Monthly stock file (permno, date, ret, retx)

        Returns:
            Panel with ret, retx, ret_status; begret/endret dropped
        """
        logger.info("Attaching returns within trading windows...")

        in_window = (firm_dates["date"] >= firm_dates["begret"]) & (
            firm_dates["date"] <= firm_dates["endret"]
        )
        panel = firm_dates.loc[in_window].drop(columns=["begret", "endret"])

        screened = self.screen_returns(returns)
        panel = panel.merge(screened, on=PANEL_KEYS, how="left")
        panel["ret_status"] = panel["ret_status"].fillna(RET_MISSING)

        panel = self._handle_duplicates(panel.reset_index(drop=True), "trading_panel")

        counts = panel["ret_status"].value_counts()
        self.stats["trading_panel"] = len(panel)
        logger.info(
            f"Trading panel: {len(panel)} rows "
            f"({counts.get(RET_VALID, 0)} valid, {counts.get(RET_INVALID, 0)} invalid, "
            f"{counts.get(RET_MISSING, 0)} missing returns)"
        )
        return panel

    def restrict_to_index(
        self, panel: pd.DataFrame, membership: pd.DataFrame
    ) -> pd.DataFrame:
        """
        Keep firm-dates during index membership and inside the analysis window.

        Firms without any membership interval are dropped. Missing returns
        are then zero-filled or dropped according to missing_returns, and
        integer year/month keys are derived.

        Args:
            panel: Output of attach_returns()
            membership: Intervals with permno, begdt, enddt

        Returns:
            Index-constituent panel
        """
        logger.info("Restricting panel to index membership...")

        intervals = membership[["permno", "begdt", "enddt"]]
        n_open = int(intervals["enddt"].isna().sum())
        if n_open:
            logger.warning(f"{n_open} membership intervals have no end date and match nothing")

        fanout = intervals.groupby("permno").size()
        n_rows = int(panel["permno"].map(fanout).fillna(1).sum())
        self._check_cardinality(n_rows, "Membership join")

        out = panel.merge(intervals, on="permno", how="left")
        out = out.loc[out["begdt"].notna()]

        if self.membership_granularity == "month":
            date = out["date"].dt.to_period("M")
            lo = out["begdt"].dt.to_period("M")
            hi = out["enddt"].dt.to_period("M")
        else:
            date, lo, hi = out["date"], out["begdt"], out["enddt"]

        member = (date >= lo) & (date <= hi)
        in_sample = out["date"].between(self.analysis_start, self.analysis_end)
        out = out.loc[member & in_sample].drop(columns=["begdt", "enddt"])

        # Two meanings of "absent" stay distinct through ret_status
        if self.missing_returns == "zero":
            out["ret"] = out["ret"].fillna(0.0)
            out["retx"] = out["retx"].fillna(0.0)
        else:
            before = len(out)
            out = out.dropna(subset=["ret", "retx"])
            logger.info(f"Dropped {before - len(out)} rows with missing returns")

        out["month"] = out["date"].dt.month.astype("int64")
        out["year"] = out["date"].dt.year.astype("int64")

        out = self._handle_duplicates(out.reset_index(drop=True), "index_panel")

        self.stats["index_panel"] = len(out)
        logger.info(
            f"Index panel: {len(out)} rows for {out['permno'].nunique()} firms"
        )
        return out

    def classify_industries(
        self, panel: pd.DataFrame, classes: pd.DataFrame
    ) -> pd.DataFrame:
        """
        Attach the industry class whose SIC range contains each firm's code.

        The range join runs on the distinct codes (codes x ranges filtered
        by sic_start <= hsiccd <= sic_end) and is then joined back to the
        panel by equality. A code inside several ranges yields one row per
        range; a code inside none gets the sentinel class and bounds.

        Args:
            panel: Panel with an hsiccd column
            classes: SIC ranges with ffclass, sic_start, sic_end

        Returns:
            Panel with ffclass, sic_start, sic_end
        """
        logger.info("Classifying industries by SIC range...")

        codes = pd.DataFrame({"hsiccd": panel["hsiccd"].dropna().unique()})
        ranges = classes[["ffclass", "sic_start", "sic_end"]]

        pairs = codes.merge(ranges, how="cross")
        pairs = pairs.loc[
            (pairs["hsiccd"] >= pairs["sic_start"]) & (pairs["hsiccd"] <= pairs["sic_end"])
        ].sort_values(["hsiccd", "ffclass", "sic_start"])

        matches = pairs["hsiccd"].value_counts()
        overlapping = matches[matches > 1]
        if len(overlapping):
            sample = sorted(overlapping.index)[:10]
            logger.warning(
                f"{len(overlapping)} SIC codes fall in more than one range, e.g. {sample}"
            )

        fanout = panel["hsiccd"].map(matches).fillna(1)
        self._check_cardinality(int(fanout.sum()), "Industry range join")

        out = panel.merge(pairs, on="hsiccd", how="left")

        unmatched = out["ffclass"].isna()
        self.stats["unclassified_rows"] = int(unmatched.sum())
        if unmatched.any():
            codes_missing = out.loc[unmatched, "hsiccd"].nunique(dropna=False)
            logger.info(
                f"{int(unmatched.sum())} rows ({codes_missing} SIC codes) matched no range, "
                f"assigned class {SENTINEL_CLASS}"
            )

        out["ffclass"] = out["ffclass"].fillna(SENTINEL_CLASS).astype("int64")
        out["sic_start"] = out["sic_start"].fillna(SENTINEL_SIC_BOUND).astype("int64")
        out["sic_end"] = out["sic_end"].fillna(SENTINEL_SIC_BOUND).astype("int64")

        return self._handle_duplicates(out, "classified_panel")

    def merge_factors(self, panel: pd.DataFrame, factors: pd.DataFrame) -> pd.DataFrame:
        """
        Merge monthly factors by (year, month).

        Months absent from the factor table keep NaN factor values.
        The raw SIC code and range bounds are dropped.

        Args:
            panel: Classified panel
            factors: DataFrame with year, month, mktpre, smb, hml, rf

        Returns:
            Final analysis table
        """
        out = panel.merge(
            factors, on=["year", "month"], how="left", validate="many_to_one"
        )

        no_factors = out["mktpre"].isna()
        self.stats["rows_without_factors"] = int(no_factors.sum())
        if no_factors.any():
            logger.warning(
                f"{int(no_factors.sum())} rows have no factor data for their month"
            )

        return out.drop(columns=["hsiccd", "sic_start", "sic_end"])

    def build(self) -> pd.DataFrame:
        """
        Build the complete analysis table.

        Returns:
            Final analysis DataFrame
        """
        logger.info("="*60)
        logger.info("Building index-constituent panel")
        logger.info(f"Data source: {self.loader.get_source_name()}")
        logger.info("="*60)
        started = time.time()
        self.stats = {}

        headers = self.loader.load_headers()
        calendar = self.loader.load_calendar()
        membership = self.loader.load_membership()
        returns = self.loader.load_returns()
        classes = self.loader.load_industry_classes(self.industry_scheme)
        factors = self.loader.load_factors()

        firm_dates = self.build_firm_dates(headers, calendar)
        panel = self.attach_returns(firm_dates, returns)
        del firm_dates

        panel = self.restrict_to_index(panel, membership)
        panel = self.classify_industries(panel, classes)
        panel = self.merge_factors(panel, factors)

        panel = panel.sort_values(["permno", "date", "ffclass"], kind="mergesort")
        panel = panel.reset_index(drop=True)
        self.stats["final"] = len(panel)

        logger.info("="*60)
        logger.info(f"Panel complete: {panel.shape[0]} rows x {panel.shape[1]} columns")
        if not panel.empty:
            logger.info(f"Date range: {panel['date'].min().date()} to {panel['date'].max().date()}")
        logger.info(f"Unique firms: {panel['permno'].nunique()}")
        logger.info(f"Elapsed: {time.time() - started:.1f}s")
        logger.info("="*60)

        return panel

    def save(self, panel: pd.DataFrame, path: Union[str, Path], format: str = "csv") -> None:
        """
        Save panel to disk.

        Args:
            panel: Panel DataFrame
            path: Output path
            format: 'csv' or 'parquet'
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if format == "parquet":
            panel.to_parquet(path, index=False)
        else:
            panel.to_csv(path, index=False)

        logger.info(f"Saved panel to {path}")


def load_panel(path: Union[str, Path]) -> pd.DataFrame:
    """Load a saved panel from CSV or Parquet based on extension."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Panel file not found: {path}")

    if path.suffix.lower() in [".parquet", ".pq"]:
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path)
    df["date"] = pd.to_datetime(df["date"])
    return df
