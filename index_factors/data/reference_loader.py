"""
Fama-French reference data loading.

Fetches the industry classification intervals (ffind.csv) and the monthly
three-factor series (3factors.csv). Remote sources are downloaded with
requests and cached as raw CSV text so repeated runs do not hit the
network; local paths are read directly.
"""

import logging
from io import StringIO
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
import requests

from ..config import CACHE_DIR, REFERENCE_URLS, REQUEST_TIMEOUT
from .base_loader import DataLoadError

logger = logging.getLogger(__name__)

FACTOR_COLS = ["mktpre", "smb", "hml", "rf"]


class ReferenceLoader:
    """
    Loader for the Fama-French reference tables.

    Example:
        ref = ReferenceLoader()
        classes = ref.load_industry_classes(scheme=5)
        factors = ref.load_factors()
    """

    def __init__(
        self,
        urls: Optional[Dict[str, str]] = None,
        cache_dir: Optional[Path] = None,
        use_cache: bool = True,
        timeout: int = REQUEST_TIMEOUT,
    ):
        """
        Initialize the loader.

        Args:
            urls: Mapping with 'industry_classes' and 'factors' sources
                  (URLs or local paths, default from config)
            cache_dir: Directory for cached downloads
            use_cache: Whether to read and write the download cache
            timeout: HTTP timeout in seconds
        """
        self.urls = dict(REFERENCE_URLS if urls is None else urls)
        self.cache_dir = Path(cache_dir) if cache_dir else CACHE_DIR
        self.use_cache = use_cache
        self.timeout = timeout

    def _fetch_text(self, name: str) -> str:
        """Return the CSV text for a reference table, using the cache if allowed."""
        source = str(self.urls[name])

        if not source.startswith(("http://", "https://")):
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"Reference file not found: {path}")
            return path.read_text()

        cache_path = self.cache_dir / f"{name}.csv"
        if self.use_cache and cache_path.exists():
            logger.info(f"Cache hit: {name} ({cache_path})")
            return cache_path.read_text()

        logger.info(f"Downloading {name} from {source}")
        response = requests.get(source, timeout=self.timeout)
        response.raise_for_status()
        if not response.text.strip():
            raise DataLoadError(f"Empty response when downloading {name} from {source}")

        if self.use_cache:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            cache_path.write_text(response.text)
            logger.debug(f"Cached {name} at {cache_path}")

        return response.text

    def _read_table(self, name: str, required: list) -> pd.DataFrame:
        """Parse a reference table and check its columns."""
        text = self._fetch_text(name)
        try:
            df = pd.read_csv(StringIO(text), skipinitialspace=True)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise DataLoadError(f"Could not parse reference table {name}: {e}") from e

        df.columns = [str(c).strip().lower() for c in df.columns]
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise DataLoadError(f"Reference table {name} is missing columns: {missing}")
        return df

    def load_industry_classes(self, scheme: int = 5) -> pd.DataFrame:
        """
        Load SIC ranges for one Fama-French industry scheme.

        Args:
            scheme: ind_def value to keep (5 for the 5-industry classification)

        Returns:
            DataFrame with columns: ffclass, sic_start, sic_end
        """
        df = self._read_table("industry_classes", ["ind_def", "class", "sic_start", "sic_end"])

        df = df[df["ind_def"] == scheme].rename(columns={"class": "ffclass"})
        if df.empty:
            raise DataLoadError(f"No industry classes found for scheme ind_def={scheme}")

        out = df[["ffclass", "sic_start", "sic_end"]].copy()
        for col in out.columns:
            out[col] = pd.to_numeric(out[col], errors="coerce")

        bad = out.isna().any(axis=1) | (out["sic_end"] < out["sic_start"])
        if bad.any():
            raise DataLoadError(
                f"Industry classification contains {int(bad.sum())} invalid sic_start/sic_end rows"
            )

        out = out.astype("int64").reset_index(drop=True)
        logger.info(
            f"Loaded {len(out)} SIC ranges for {out['ffclass'].nunique()} industry classes "
            f"(scheme {scheme})"
        )
        return out

    def load_factors(self) -> pd.DataFrame:
        """
        Load the monthly three-factor series.

        The packed YYYYMM date is split into year and month, and factor
        values are converted from percentage points to fractions.

        Returns:
            DataFrame with columns: year, month, mktpre, smb, hml, rf
        """
        df = self._read_table("factors", ["date"] + FACTOR_COLS)

        packed = pd.to_numeric(df["date"], errors="coerce")
        if packed.isna().any():
            raise DataLoadError("Factor table has non-numeric YYYYMM dates")
        packed = packed.astype("int64")

        out = pd.DataFrame({
            "year": packed // 100,
            "month": packed % 100,
        })
        if not out["month"].between(1, 12).all():
            raise DataLoadError("Factor table has dates that are not in YYYYMM form")

        for col in FACTOR_COLS:
            out[col] = pd.to_numeric(df[col], errors="coerce") / 100.0

        logger.info(
            f"Loaded {len(out)} monthly factor records "
            f"({out['year'].min()}-{out['year'].max()})"
        )
        return out
