"""
orderlens - order confirmation detection and purchased-product extraction.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .orchestrator import DetectionOrchestrator
from .protocols import DetectionOutcome, ExtractedProduct, OrderAnalysis

__all__ = ["__version__", "Config", "DetectionOrchestrator", "DetectionOutcome", "ExtractedProduct", "OrderAnalysis"]
