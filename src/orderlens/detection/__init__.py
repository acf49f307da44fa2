"""
Order-page detection.

Two layers of regex-table scoring:
1. URL classifier: max-based score over confirmation / order-details tables,
   with an exclude list that always wins
2. Page classifier: additive score over URL, title and body-text layers with a
   provenance-dependent threshold
"""

from .page_classifier import SignalLayer, classify_page, passes_threshold, should_invoke_llm
from .patterns import Store
from .url_classifier import (
    classify_order_details_url,
    classify_url,
    detect_store,
    is_excluded_url,
    looks_order_related,
    url_confidence_score,
)

__all__ = [
    "SignalLayer",
    "Store",
    "classify_order_details_url",
    "classify_page",
    "classify_url",
    "detect_store",
    "is_excluded_url",
    "looks_order_related",
    "passes_threshold",
    "should_invoke_llm",
    "url_confidence_score",
]
