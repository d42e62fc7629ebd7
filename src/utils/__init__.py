"""
Utility modules for the supply chain forecasting engine.
"""

from .logging_utils import setup_logger, get_logger, WarningLedger
from .data_validation import validate_dataframe, validate_node_graph

__all__ = [
    "setup_logger",
    "get_logger",
    "WarningLedger",
    "validate_dataframe",
    "validate_node_graph",
]
