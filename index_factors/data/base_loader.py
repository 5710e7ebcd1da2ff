"""
Abstract base class for data loaders.

Defines the interface the PanelBuilder consumes, so that the CRSP
extracts and the Fama-French reference tables can come from local
files, remote URLs or test fixtures interchangeably.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import pandas as pd


class DataLoadError(ValueError):
    """Raised when an input file is malformed or a date cannot be parsed."""


class DataLoader(ABC):
    """
    Abstract base class for loading the pipeline inputs.

    The returned DataFrames use the standardized column names:
    - Headers: permno, hsiccd, hcomnam, begret, endret
    - Calendar: date
    - Membership: permno, begdt, enddt
    - Returns: permno, date, ret, retx
    - Industry classes: ffclass, sic_start, sic_end
    - Factors: year, month, mktpre, smb, hml, rf
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize the loader.

        Args:
            data_dir: Directory containing data files
        """
        self.data_dir = Path(data_dir) if data_dir else None

    @abstractmethod
    def load_headers(self) -> pd.DataFrame:
        """
        Load firm header records.

        Returns:
            DataFrame with columns:
            - permno: Firm identifier
            - hsiccd: Raw SIC industry code
            - hcomnam: Company name
            - begret: First trading date
            - endret: Last trading date
        """
        pass

    @abstractmethod
    def load_calendar(self) -> pd.DataFrame:
        """
        Load the trading calendar.

        Returns:
            DataFrame with a single column 'date' of distinct trading dates
        """
        pass

    @abstractmethod
    def load_membership(self) -> pd.DataFrame:
        """
        Load index membership intervals.

        Returns:
            DataFrame with columns: permno, begdt, enddt
        """
        pass

    @abstractmethod
    def load_returns(self) -> pd.DataFrame:
        """
        Load monthly firm returns.

        Returns:
            DataFrame with columns: permno, date, ret, retx.
            ret/retx are numeric with NaN where the source had no value.
        """
        pass

    @abstractmethod
    def load_industry_classes(self, scheme: int = 5) -> pd.DataFrame:
        """
        Load industry classification intervals for one scheme.

        Returns:
            DataFrame with columns: ffclass, sic_start, sic_end
        """
        pass

    @abstractmethod
    def load_factors(self) -> pd.DataFrame:
        """
        Load monthly factor-model values in fractional units.

        Returns:
            DataFrame with columns: year, month, mktpre, smb, hml, rf
        """
        pass

    def get_source_name(self) -> str:
        """
        Get the name of this data source.

        Returns:
            Name string (e.g., 'crsp', 'composite')
        """
        return self.__class__.__name__.lower().replace("loader", "")
