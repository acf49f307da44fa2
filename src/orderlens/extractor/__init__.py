"""
orderlens extraction - sanitation and product extraction

Three ways of turning an order page into products:
1. Primary: LLM-assisted extraction over the sanitized page text
2. Secondary: text heuristics (confirmation phrase, retailer, order number)
   when no model credential is configured or the model call fails
3. Fallback: DOM strategy chain over the parsed page when the model confirms
   an order but names no products
"""

from .dom_extractor import (
    ClassNameStrategy,
    DataAttributeStrategy,
    DOMContext,
    DOMFallbackExtractor,
    DOMStrategy,
    ItemContainerStrategy,
    ListItemStrategy,
    QuantityLineStrategy,
    TableRowStrategy,
)
from .heuristic_extractor import extract_heuristically
from .llm_extractor import LLMExtractor, apply_heuristic_override, parse_order_analysis
from .product_text import extract_price, is_likely_product_name, parse_quantity_line
from .sanitizer import PageSanitizer, extract_page_content, html_to_text

__all__ = [
    "ClassNameStrategy",
    "DataAttributeStrategy",
    "DOMContext",
    "DOMFallbackExtractor",
    "DOMStrategy",
    "ItemContainerStrategy",
    "ListItemStrategy",
    "QuantityLineStrategy",
    "TableRowStrategy",
    "extract_heuristically",
    "LLMExtractor",
    "apply_heuristic_override",
    "parse_order_analysis",
    "extract_price",
    "is_likely_product_name",
    "parse_quantity_line",
    "PageSanitizer",
    "extract_page_content",
    "html_to_text",
]
