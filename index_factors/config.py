"""
Central configuration for the index factor-returns pipeline.

This module serves as the single source of truth for paths, input file
names, reference data locations and pipeline parameters. Values can be
overridden from a YAML file with load_config_file().
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

import yaml

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL = logging.INFO


def setup_logging(level: int = LOG_LEVEL) -> None:
    """Configure logging for the application."""
    logging.basicConfig(format=LOG_FORMAT, level=level)


# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root (parent of index_factors/)
PROJECT_ROOT = Path(__file__).parent.parent

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
STOCK_DATA_DIR = DATA_DIR / "stock_data"
CACHE_DIR = DATA_DIR / "cache"

# Output directories
RESULTS_DIR = PROJECT_ROOT / "results"
FIGURES_DIR = RESULTS_DIR / "figures"

# Default file paths
DEFAULT_PANEL_PATH = DATA_DIR / "index_panel.csv"

# =============================================================================
# INPUT FILES
# =============================================================================

# CRSP extracts expected in the stock data directory
DATA_FILES: Dict[str, str] = {
    "headers": "msfhdr.csv",        # Firm header: permno, hsiccd, hcomnam, begret, endret
    "calendar": "msp500.csv",       # Monthly index returns, one row per caldt
    "membership": "msp500list.csv", # Index membership: permno, start, ending
    "returns": "msf.csv",           # Monthly stock file: permno, date, ret, retx
}

# Columns read from each CRSP extract
HEADER_COLS = ["permno", "hsiccd", "hcomnam", "begret", "endret"]
CALENDAR_COLS = ["caldt"]
MEMBERSHIP_COLS = ["permno", "start", "ending"]
RETURN_COLS = ["permno", "date", "ret", "retx"]

# CRSP SAS exports write dates as 31JAN2000
CRSP_DATE_FORMAT = "%d%b%Y"

# =============================================================================
# REFERENCE DATA
# =============================================================================

GITHUB_BASE_URL = "https://raw.githubusercontent.com/sureshlazaruspaul/"

REFERENCE_URLS: Dict[str, str] = {
    "industry_classes": GITHUB_BASE_URL + "fama-french-ind-class/main/ffind.csv",
    "factors": GITHUB_BASE_URL + "fama-french-ind-class/main/3factors.csv",
}

REQUEST_TIMEOUT = 60  # seconds

# =============================================================================
# PIPELINE CONFIGURATION
# =============================================================================

PIPELINE: Dict[str, Any] = {
    "analysis_start": "1925-01-01",
    "analysis_end": "2020-12-31",
    "return_floor": -0.99,           # ret/retx at or below this are data errors
    "missing_returns": "zero",       # "zero" or "drop"
    "membership_granularity": "month",  # "month" or "day"
    "duplicate_policy": "warn",      # "warn", "drop" or "raise"
    "industry_scheme": 5,            # ind_def value in the classification file
    "max_panel_rows": 50_000_000,    # Guard against runaway joins
}

MISSING_RETURN_POLICIES = ["zero", "drop"]
MEMBERSHIP_GRANULARITIES = ["month", "day"]
DUPLICATE_POLICIES = ["warn", "drop", "raise"]

# =============================================================================
# INDUSTRY CLASSIFICATION
# =============================================================================

# Fama-French 5-industry classes
INDUSTRY_LABELS: Dict[int, str] = {
    1: "Consumer",        # Durables, NonDurables, Wholesale, Retail, Some Services
    2: "Manufacturing",   # Manufacturing, Energy, Utilities
    3: "HiTec",           # Business Equipment, Telephone and Television Transmission
    4: "Health",          # Healthcare, Medical Equipment, Drugs
    5: "Other",           # Everything else
}

SENTINEL_CLASS = 5
SENTINEL_SIC_BOUND = -9999

# =============================================================================
# REGRESSION CONFIGURATION
# =============================================================================

REGRESSION: Dict[str, Any] = {
    "dependent": "ret",
    "factors": ["mktpre", "smb", "hml"],
    "confidence": 0.95,
}

# =============================================================================
# PLOT CONFIGURATION
# =============================================================================

PLOTS: Dict[str, Any] = {
    "bins": [100, 250, 1000],
    "overlay_colors": ["red", "green", "blue"],
    "stacked_color": "red",
    "xlim": (-1.0, 1.0),
    "sample_label": "S&P 500 firms only",
}


# =============================================================================
# OVERRIDES
# =============================================================================

_OVERRIDABLE = {
    "pipeline": PIPELINE,
    "regression": REGRESSION,
    "plots": PLOTS,
    "data_files": DATA_FILES,
    "reference_urls": REFERENCE_URLS,
}


def load_config_file(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """
    Load configuration overrides from a YAML file.

    The file may contain any of the sections pipeline, regression, plots,
    data_files and reference_urls. Keys in each section update the
    corresponding module-level dict in place.

    Args:
        path: Path to the YAML file

    Returns:
        Dict of the sections that were applied
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    unknown = set(overrides) - set(_OVERRIDABLE)
    if unknown:
        raise ValueError(f"Unknown config sections: {sorted(unknown)}")

    for section, values in overrides.items():
        if values is not None and not isinstance(values, dict):
            raise ValueError(f"Config section '{section}' must be a mapping: {path}")

    # Nothing is applied unless the whole file is valid
    validate_pipeline({**PIPELINE, **(overrides.get("pipeline") or {})})

    for section, values in overrides.items():
        _OVERRIDABLE[section].update(values or {})

    logging.getLogger(__name__).info(f"Loaded config overrides from {path}")
    return overrides


def validate_pipeline(settings: Optional[Dict[str, Any]] = None) -> None:
    """Check that pipeline policies hold supported values."""
    settings = settings if settings is not None else PIPELINE

    if settings["missing_returns"] not in MISSING_RETURN_POLICIES:
        raise ValueError(f"missing_returns must be one of {MISSING_RETURN_POLICIES}")
    if settings["membership_granularity"] not in MEMBERSHIP_GRANULARITIES:
        raise ValueError(f"membership_granularity must be one of {MEMBERSHIP_GRANULARITIES}")
    if settings["duplicate_policy"] not in DUPLICATE_POLICIES:
        raise ValueError(f"duplicate_policy must be one of {DUPLICATE_POLICIES}")
    # YAML reads unquoted dates as datetime.date, str() keeps both ISO formatted
    if str(settings["analysis_start"]) > str(settings["analysis_end"]):
        raise ValueError("analysis_start must not be after analysis_end")
