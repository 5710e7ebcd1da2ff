"""Data loading and processing modules."""

from .base_loader import DataLoader, DataLoadError
from .crsp_loader import CRSPLoader
from .reference_loader import ReferenceLoader
from .composite_loader import CompositeLoader
from .panel_builder import PanelBuilder, JoinCardinalityError, load_panel
from .data_validator import DataValidator

__all__ = [
    "DataLoader",
    "DataLoadError",
    "CRSPLoader",
    "ReferenceLoader",
    "CompositeLoader",
    "PanelBuilder",
    "JoinCardinalityError",
    "load_panel",
    "DataValidator",
]
