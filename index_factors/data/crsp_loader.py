"""
CRSP extract loading utilities.

Handles loading and parsing of the CSV extracts (firm header, index
returns, index membership, monthly stock file) with column selection,
strict date parsing and numeric coercion.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from ..config import (
    STOCK_DATA_DIR,
    DATA_FILES,
    HEADER_COLS,
    CALENDAR_COLS,
    MEMBERSHIP_COLS,
    RETURN_COLS,
    CRSP_DATE_FORMAT,
)
from .base_loader import DataLoadError

logger = logging.getLogger(__name__)


class CRSPLoader:
    """
    Loader for CRSP CSV extracts.

    Column names are matched case-insensitively (CRSP exports are often
    upper case) and returned in lower case. Dates are parsed with a fixed
    format; any value that does not match raises DataLoadError.
    """

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        files: Optional[Dict[str, str]] = None,
        date_format: str = CRSP_DATE_FORMAT,
    ):
        """
        Initialize the loader.

        Args:
            data_dir: Directory containing the CSV extracts (default from config)
            files: Mapping of dataset name to file name (default from config)
            date_format: strptime format of the date columns
        """
        self.data_dir = Path(data_dir) if data_dir else STOCK_DATA_DIR
        self.files = dict(DATA_FILES if files is None else files)
        self.date_format = date_format

    def _read_crsp(self, name: str, usecols: List[str]) -> pd.DataFrame:
        """
        Read one CRSP extract.

        Args:
            name: Dataset key in self.files
            usecols: Required columns (lower case)

        Returns:
            DataFrame with lower-case column names
        """
        filename = self.files[name]
        filepath = self.data_dir / filename

        if not filepath.exists():
            raise FileNotFoundError(f"CRSP file not found: {filepath}")

        wanted = set(usecols)
        try:
            df = pd.read_csv(
                filepath,
                usecols=lambda c: c.strip().lower() in wanted,
                dtype=str,
                low_memory=False,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise DataLoadError(f"Could not parse {filename}: {e}") from e

        df.columns = [c.strip().lower() for c in df.columns]

        missing = [c for c in usecols if c not in df.columns]
        if missing:
            raise DataLoadError(f"{filename} is missing required columns: {missing}")

        logger.debug(f"Loaded {len(df)} rows from {filename}")
        return df[usecols].copy()

    def _parse_dates(self, df: pd.DataFrame, col: str, name: str) -> pd.Series:
        """Parse a date column, failing on any value that does not match the format."""
        raw = df[col].str.strip()
        parsed = pd.to_datetime(raw, format=self.date_format, errors="coerce")

        bad = parsed.isna() & raw.notna() & (raw != "")
        if bad.any():
            example = raw[bad].iloc[0]
            raise DataLoadError(
                f"{self.files[name]}: {int(bad.sum())} values in '{col}' do not match "
                f"date format {self.date_format!r} (e.g. {example!r})"
            )
        return parsed

    def _to_numeric(self, series: pd.Series) -> pd.Series:
        """Convert a series to numeric, coercing errors (CRSP letter codes) to NaN."""
        return pd.to_numeric(series, errors="coerce")

    def _parse_permno(self, df: pd.DataFrame, name: str) -> pd.DataFrame:
        """Convert permno to integer, dropping rows without one."""
        df["permno"] = self._to_numeric(df["permno"])
        n_missing = int(df["permno"].isna().sum())
        if n_missing:
            logger.warning(f"{self.files[name]}: dropped {n_missing} rows without permno")
            df = df.dropna(subset=["permno"]).copy()
        df["permno"] = df["permno"].astype("int64")
        return df

    def load_headers(self) -> pd.DataFrame:
        """
        Load the firm header file.

        Returns:
            DataFrame with columns: permno, hsiccd, hcomnam, begret, endret
        """
        df = self._read_crsp("headers", HEADER_COLS)
        df = self._parse_permno(df, "headers")

        df["hsiccd"] = self._to_numeric(df["hsiccd"])
        df["begret"] = self._parse_dates(df, "begret", "headers")
        df["endret"] = self._parse_dates(df, "endret", "headers")

        logger.info(f"Loaded {len(df)} firm headers")
        return df.reset_index(drop=True)

    def load_calendar(self) -> pd.DataFrame:
        """
        Load trading dates from the index return file.

        Returns:
            DataFrame with one column 'date' of distinct, sorted dates
        """
        df = self._read_crsp("calendar", CALENDAR_COLS)
        dates = self._parse_dates(df, "caldt", "calendar").dropna()

        calendar = (
            pd.DataFrame({"date": dates})
            .drop_duplicates()
            .sort_values("date")
            .reset_index(drop=True)
        )

        logger.info(f"Loaded {len(calendar)} trading dates")
        return calendar

    def load_membership(self) -> pd.DataFrame:
        """
        Load index membership intervals.

        Returns:
            DataFrame with columns: permno, begdt, enddt
        """
        df = self._read_crsp("membership", MEMBERSHIP_COLS)
        df = self._parse_permno(df, "membership")

        df["begdt"] = self._parse_dates(df, "start", "membership")
        df["enddt"] = self._parse_dates(df, "ending", "membership")
        df = df.drop(columns=["start", "ending"])

        logger.info(
            f"Loaded {len(df)} membership intervals for {df['permno'].nunique()} firms"
        )
        return df.reset_index(drop=True)

    def load_returns(self) -> pd.DataFrame:
        """
        Load the monthly stock file.

        Returns are not screened here; PanelBuilder flags values at or
        below the return floor so they stay distinguishable from months
        without a record.

        Returns:
            DataFrame with columns: permno, date, ret, retx
        """
        df = self._read_crsp("returns", RETURN_COLS)
        df = self._parse_permno(df, "returns")

        df["date"] = self._parse_dates(df, "date", "returns")
        df["ret"] = self._to_numeric(df["ret"])
        df["retx"] = self._to_numeric(df["retx"])
        df = df.dropna(subset=["date"])

        logger.info(
            f"Loaded {len(df)} return records for {df['permno'].nunique()} firms"
        )
        return df.reset_index(drop=True)
