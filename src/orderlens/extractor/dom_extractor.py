"""
BeautifulSoup-based product extraction as fallback.

Used when the model confirmed an order but returned no products, or when the
page heuristics are strong enough to skip the model's verdict. Strategies are
tried in order and the first one that yields products wins.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlparse

import structlog
from bs4 import BeautifulSoup, Tag

from ..observability import increment
from ..protocols import MAX_PRODUCTS, ExtractedProduct
from .product_text import extract_price, is_likely_product_name, parse_quantity_line, strip_price

logger = structlog.get_logger(__name__)

MAX_ELEMENTS_PER_SELECTOR = 15
MAX_TABLES = 5
MAX_LIST_ITEMS = 100

# Elements whose text is searched for a price belonging to a matched name
PRICE_CONTAINER_SELECTOR = (
    'tr, li, .product-item, .order-item, .item, .cart-item, [class*="Product"], '
    '[class*="Item"], .line-item, .product-price-container'
)

STORE_SELECTORS: Dict[str, Tuple[str, ...]] = {
    "bunnings.com.au": (
        ".order-item h6.MuiTypography-subtitle2",
        ".order-item .product-info h6",
        "h6.MuiTypography-subtitle2",
        ".product-info-container h6",
        'div[class*="order-item"] h6',
        'div[class*="product-info"] h6',
        'a[href*="_p0"] h6',
    ),
    "amazon.": (
        ".product-name",
        ".a-fixed-left-grid .a-col-right",
        ".item-title",
        ".order-item-name",
    ),
    "kmart.com.au": (
        ".product-name",
        ".item-description",
        ".cart-item-name",
    ),
    "target.com.au": (
        ".product-name",
        ".item-name",
    ),
}

COMMON_SELECTORS: Tuple[str, ...] = (
    ".product-name",
    ".product-title",
    ".product-description",
    ".item-name",
    ".item-title",
    ".item-description",
    ".order-item .name",
    ".order-item .title",
    ".order-item-name",
    "tr.order-item td:first-child",
    ".checkout-product-name",
    '[class*="product"] [class*="name"]',
    '[class*="product"] [class*="title"]',
    '[class*="item"] [class*="name"]',
    '[class*="ProductCard"] [class*="Title"]',
    '[class*="OrderItem"] [class*="Product"]',
    ".cart-item .product-name",
    ".line-item-name",
)

DATA_ATTRIBUTE_SELECTORS: Tuple[Tuple[str, Optional[str]], ...] = (
    ("[data-product-name]", "data-product-name"),
    ("[data-item-name]", "data-item-name"),
    ('[data-testid="product-name"]', None),
    ('[data-test="product-name"]', None),
    ('[data-testid*="product-title"]', None),
    ("[data-asin] .a-link-normal", None),
)
DATA_PRICE_ATTRIBUTES = ("data-price", "data-product-price", "data-item-price")
DATA_QUANTITY_ATTRIBUTES = ("data-quantity", "data-product-quantity", "data-qty")

ITEM_CONTAINER_SELECTOR = (
    '.order-item, .line-item, .cart-item, .product-item, [class*="OrderItem"], '
    '[class*="LineItem"], [class*="order-line"]'
)

ORDER_SECTION_HEADING = re.compile(
    r"what'?s in (?:your|this) order|items? in (?:your|this) order|your items|items ordered",
    re.IGNORECASE,
)
_TABLE_HEADER_ROW = re.compile(r"quantity|price|total|subtotal|shipping|tax|discount|item\s*#", re.IGNORECASE)
_LIST_SUMMARY = re.compile(r"subtotal|total|tax|shipping|delivery|discount|promo|fee|item\s*#", re.IGNORECASE)
_LIST_PRICE = re.compile(r"(\d{1,4}\.\d{2})")
_LEADING_BULLETS = re.compile(r"^[\d\s\-•]+")


@dataclass(frozen=True)
class DOMContext:
    """Page facts a strategy may consult."""

    url: str
    hostname: str

    @classmethod
    def from_url(cls, url: str) -> DOMContext:
        return cls(url=url, hostname=(urlparse(url).hostname or "").lower())


class DOMStrategy(Protocol):
    """One way of finding products in a parsed order page."""

    name: str

    def extract(self, soup: BeautifulSoup, context: DOMContext) -> List[ExtractedProduct]: ...


def _text(element: Tag) -> str:
    return " ".join(element.get_text(" ", strip=True).split())


def _product(name: str, price: Optional[float] = None, quantity: int = 1) -> Optional[ExtractedProduct]:
    if not is_likely_product_name(name):
        return None
    return ExtractedProduct(name=name, price=price, quantity=quantity, is_recurring=True)


def _nearby_price(element: Tag) -> Optional[float]:
    container = element.css.closest(PRICE_CONTAINER_SELECTOR)
    return extract_price(_text(container if container is not None else element))


def _collect(products: Iterable[Optional[ExtractedProduct]]) -> List[ExtractedProduct]:
    """Exact-name dedupe, first occurrence wins."""
    seen: set[str] = set()
    unique: List[ExtractedProduct] = []
    for product in products:
        if product is None or product.name in seen:
            continue
        seen.add(product.name)
        unique.append(product)
    return unique


# ============================================================================
# Strategies
# ============================================================================


class QuantityLineStrategy:
    """Quantity lines such as "2 x Dog Food", scoped to a "What's in your order" section when present."""

    name = "quantity_line"

    def _scope(self, soup: BeautifulSoup) -> Tag:
        heading = soup.find(string=ORDER_SECTION_HEADING)
        if heading is None or heading.parent is None:
            return soup
        # Climb until the container holds more than the heading itself
        container = heading.parent
        while container.parent is not None and len(_text(container)) <= len(heading.strip()) + 5:
            container = container.parent
        return container

    def extract(self, soup: BeautifulSoup, context: DOMContext) -> List[ExtractedProduct]:
        products = []
        for element in self._scope(soup).find_all(["li", "p", "div", "span", "td", "tr"]):
            if element.find(["li", "p", "div", "tr"]) is not None:
                continue
            line = _text(element)
            parsed = parse_quantity_line(line)
            if parsed is None:
                continue
            name = strip_price(parsed.name)
            products.append(_product(name, extract_price(line), parsed.quantity))
        return _collect(products)


class DataAttributeStrategy:
    """Elements carrying product-oriented data-* attributes."""

    name = "data_attribute"

    @staticmethod
    def _attribute_number(element: Tag, names: Sequence[str]) -> Optional[float]:
        for attribute in names:
            value = element.get(attribute)
            if isinstance(value, str):
                try:
                    return float(value.replace(",", "").lstrip("$£€"))
                except ValueError:
                    continue
        return None

    def extract(self, soup: BeautifulSoup, context: DOMContext) -> List[ExtractedProduct]:
        products: List[Optional[ExtractedProduct]] = []
        for selector, name_attribute in DATA_ATTRIBUTE_SELECTORS:
            for element in soup.select(selector, limit=MAX_ELEMENTS_PER_SELECTOR):
                name = element.get(name_attribute) if name_attribute else None
                if not isinstance(name, str) or not name.strip():
                    name = _text(element)
                price = self._attribute_number(element, DATA_PRICE_ATTRIBUTES)
                if price is None:
                    price = _nearby_price(element)
                quantity = self._attribute_number(element, DATA_QUANTITY_ATTRIBUTES)
                products.append(_product(name, price, int(quantity) if quantity and quantity >= 1 else 1))
            if any(products):
                break
        return _collect(products)


class ClassNameStrategy:
    """Store-specific selectors for the current hostname, then common class conventions."""

    name = "class_name"

    def __init__(
        self,
        store_selectors: Optional[Dict[str, Tuple[str, ...]]] = None,
        common_selectors: Sequence[str] = COMMON_SELECTORS,
    ) -> None:
        self.store_selectors = STORE_SELECTORS if store_selectors is None else store_selectors
        self.common_selectors = tuple(common_selectors)

    def selectors_for(self, hostname: str) -> List[str]:
        selectors: List[str] = []
        for host_fragment, store_selectors in self.store_selectors.items():
            if host_fragment in hostname:
                selectors.extend(store_selectors)
        selectors.extend(selector for selector in self.common_selectors if selector not in selectors)
        return selectors

    def extract(self, soup: BeautifulSoup, context: DOMContext) -> List[ExtractedProduct]:
        for selector in self.selectors_for(context.hostname):
            elements = soup.select(selector, limit=MAX_ELEMENTS_PER_SELECTOR)
            products = _collect(_product(_text(element), _nearby_price(element)) for element in elements)
            if products:
                logger.debug("Selector matched products", selector=selector, count=len(products))
                return products
        return []


class ItemContainerStrategy:
    """Order/cart/line item containers; the first plausible text node is the name."""

    name = "item_container"

    def extract(self, soup: BeautifulSoup, context: DOMContext) -> List[ExtractedProduct]:
        products = []
        for container in soup.select(ITEM_CONTAINER_SELECTOR):
            name = next(
                (strip_price(text) for text in container.stripped_strings if is_likely_product_name(strip_price(text))),
                None,
            )
            if name:
                products.append(_product(name, extract_price(_text(container))))
        return _collect(products)


class TableRowStrategy:
    """Rows of the first few tables: first cell is the name, the row carries the price."""

    name = "table_row"

    def extract(self, soup: BeautifulSoup, context: DOMContext) -> List[ExtractedProduct]:
        for table in soup.find_all("table", limit=MAX_TABLES):
            products = []
            for row in table.find_all("tr"):
                cells = row.find_all(["td", "th"])
                if len(cells) < 2:
                    continue
                price = extract_price(_text(row), allow_bare=True)
                if price is None:
                    continue
                name = _text(cells[0])
                if _TABLE_HEADER_ROW.search(name):
                    continue
                products.append(_product(name, price))
            products = _collect(products)
            if products:
                return products
        return []


class ListItemStrategy:
    """List items and rows whose text is "<name> ... 12.99"."""

    name = "list_item"

    def extract(self, soup: BeautifulSoup, context: DOMContext) -> List[ExtractedProduct]:
        products = []
        for item in soup.find_all(["li", "tr"], limit=MAX_LIST_ITEMS):
            text = _text(item)
            if not 10 <= len(text) <= 300:
                continue
            match = _LIST_PRICE.search(text)
            if match is None:
                continue
            before_price = text[: match.start()].rstrip(" $£€:-").strip()
            if not 5 < len(before_price) < 100 or _LIST_SUMMARY.search(before_price):
                continue
            name = _LEADING_BULLETS.sub("", before_price).strip()
            products.append(_product(name, float(match.group(1))))
        return _collect(products)


DEFAULT_STRATEGIES: Tuple[type, ...] = (
    QuantityLineStrategy,
    DataAttributeStrategy,
    ClassNameStrategy,
    ItemContainerStrategy,
    TableRowStrategy,
    ListItemStrategy,
)


# ============================================================================
# Extractor
# ============================================================================


class DOMFallbackExtractor:
    """Runs the strategy chain over a parsed page and stops at the first hit."""

    name = "dom_fallback"

    def __init__(self, strategies: Optional[Sequence[DOMStrategy]] = None, parser: str = "html.parser") -> None:
        self.strategies: List[DOMStrategy] = (
            list(strategies) if strategies is not None else [strategy() for strategy in DEFAULT_STRATEGIES]
        )
        self.parser = parser

    def extract_from_dom(self, html: str, url: str = "") -> List[ExtractedProduct]:
        """
        Extract products from page HTML.

        Args:
            html: Document HTML of the live page
            url: Page URL, used for store-specific selectors

        Returns:
            Up to 10 products, all flagged recurring; empty when no strategy matched
        """
        if not html or not html.strip():
            return []

        soup = BeautifulSoup(html, self.parser)
        context = DOMContext.from_url(url)
        for strategy in self.strategies:
            try:
                products = strategy.extract(soup, context)
            except Exception as e:
                logger.warning(
                    "DOM strategy failed",
                    strategy=strategy.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if products:
                increment("dom_strategy_hits", labels={"strategy": strategy.name})
                logger.info("DOM extraction matched", strategy=strategy.name, products=len(products))
                return _collect(products)[:MAX_PRODUCTS]

        logger.info("DOM extraction found no products", url=url)
        return []

    async def extract(self, html: str, *, url: str = "") -> List[ExtractedProduct]:
        """Run extract_from_dom in the default executor; parsing large pages is CPU-bound."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.extract_from_dom, html, url)
