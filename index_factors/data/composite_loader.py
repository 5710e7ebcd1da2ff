"""
Combined loader: CRSP extracts plus Fama-French reference tables.
"""

from pathlib import Path
from typing import Optional

import pandas as pd

from .base_loader import DataLoader
from .crsp_loader import CRSPLoader
from .reference_loader import ReferenceLoader


class CompositeLoader(DataLoader):
    """
    DataLoader that delegates stock data to a CRSPLoader and reference
    data to a ReferenceLoader.

    Usage:
        loader = CompositeLoader(data_dir="data/stock_data")
        builder = PanelBuilder(loader=loader)
    """

    def __init__(
        self,
        data_dir: Optional[Path] = None,
        crsp: Optional[CRSPLoader] = None,
        reference: Optional[ReferenceLoader] = None,
    ):
        super().__init__(data_dir)
        self.crsp = crsp or CRSPLoader(data_dir)
        self.reference = reference or ReferenceLoader()

    def load_headers(self) -> pd.DataFrame:
        return self.crsp.load_headers()

    def load_calendar(self) -> pd.DataFrame:
        return self.crsp.load_calendar()

    def load_membership(self) -> pd.DataFrame:
        return self.crsp.load_membership()

    def load_returns(self) -> pd.DataFrame:
        return self.crsp.load_returns()

    def load_industry_classes(self, scheme: int = 5) -> pd.DataFrame:
        return self.reference.load_industry_classes(scheme)

    def load_factors(self) -> pd.DataFrame:
        return self.reference.load_factors()

    def get_source_name(self) -> str:
        return "crsp"
