"""Provenance record attached to an assumption value (informational only)."""

from pydantic import BaseModel, Field
from typing import Optional, Tuple


class Provenance(BaseModel):
    """Confidence tier, source note and historical range for one assumption leaf."""
    
    confidence: Optional[str] = Field(default=None, description="Confidence tier (low/medium/high)")
    source: Optional[str] = Field(default=None, description="Source of the value")
    historical_range: Optional[Tuple[float, float]] = Field(default=None, description="Observed (low, high) range")
