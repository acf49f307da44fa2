"""
Text-only heuristic order extraction (no LLM, no DOM).

Used when no model credential is configured or the model call fails. Results
carry a fixed, lower confidence than model answers.
"""

from __future__ import annotations

import re
from typing import List, Optional

import structlog

from ..detection.patterns import CONFIRMATION_PHRASES, RETAILER_TEXT_PATTERNS
from ..protocols import ExtractedProduct, OrderAnalysis
from .product_text import extract_price

logger = structlog.get_logger(__name__)

HEURISTIC_CONFIDENCE = 0.6
MAX_HEURISTIC_PRODUCTS = 5
MIN_LINE_LENGTH = 10
MAX_LINE_LENGTH = 200
MAX_HEURISTIC_NAME_LENGTH = 50

# The captured token must contain a digit so "Order Confirmation" is not read
# as order number "Confirmation".
ORDER_NUMBER_PATTERN = re.compile(
    r"(?:order|#|:)\s*(?:number|no\.?)?\s*[:#]?\s*(?=[A-Z0-9-]*\d)([A-Z0-9-]{4,})",
    re.IGNORECASE,
)
_LINE_SPLIT = re.compile(r"[\r\n]+")
_PRODUCT_LINE_MARKER = re.compile(r"[$£€]|\d+\s*(?:x|pcs|items|qty)\b", re.IGNORECASE)


def has_confirmation_phrase(text: str) -> bool:
    lowered = text.lower().replace("’", "'")
    return any(phrase in lowered for phrase in CONFIRMATION_PHRASES)


def detect_retailer(text: str) -> Optional[str]:
    """First brand in the retailer table found in the text (table order is priority)."""
    for retailer in RETAILER_TEXT_PATTERNS:
        if retailer.pattern.search(text):
            return retailer.name
    return None


def extract_order_number(text: str) -> Optional[str]:
    match = ORDER_NUMBER_PATTERN.search(text)
    return match.group(1) if match else None


def extract_product_lines(text: str, limit: int = MAX_HEURISTIC_PRODUCTS) -> List[ExtractedProduct]:
    """Lines of plausible length carrying a currency symbol or quantity marker."""
    products: List[ExtractedProduct] = []
    for raw_line in _LINE_SPLIT.split(text):
        line = raw_line.strip()
        if not (MIN_LINE_LENGTH < len(line) < MAX_LINE_LENGTH):
            continue
        if not _PRODUCT_LINE_MARKER.search(line):
            continue
        products.append(ExtractedProduct(name=line[:MAX_HEURISTIC_NAME_LENGTH], price=extract_price(line)))
        if len(products) >= limit:
            break
    return products


def extract_heuristically(text: str) -> OrderAnalysis:
    """
    Best-effort order analysis from page text.

    Args:
        text: Plain-text projection of the page

    Returns:
        A confirmed OrderAnalysis with confidence 0.6, or the empty analysis
        when no confirmation phrase is present
    """
    if not text or not has_confirmation_phrase(text):
        return OrderAnalysis.empty()

    analysis = OrderAnalysis(
        is_order_confirmation=True,
        confidence=HEURISTIC_CONFIDENCE,
        products=tuple(extract_product_lines(text)),
        retailer=detect_retailer(text),
        order_number=extract_order_number(text),
        method="heuristic",
    )
    logger.debug(
        "Heuristic extraction completed",
        products=len(analysis.products),
        retailer=analysis.retailer,
        order_number=analysis.order_number,
    )
    return analysis
