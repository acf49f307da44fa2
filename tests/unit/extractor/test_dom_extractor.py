"""
Unit tests for the BeautifulSoup fallback extractor.
"""

from typing import List

import pytest
from bs4 import BeautifulSoup
from prometheus_client import REGISTRY

from orderlens.extractor.dom_extractor import (
    COMMON_SELECTORS,
    ClassNameStrategy,
    DataAttributeStrategy,
    DOMContext,
    DOMFallbackExtractor,
    ItemContainerStrategy,
    ListItemStrategy,
    QuantityLineStrategy,
    TableRowStrategy,
)
from orderlens.protocols import ExtractedProduct

SHOP_URL = "https://shop.example.com/checkout/success"

QUANTITY_PAGE = """
<div><h2>Recommended for you</h2><p>1 x Garden Hose 30m $39.00</p></div>
<section>
  <h2>What's in your order</h2>
  <ul><li>2 x Dog Food $19.99</li><li>1 x Cat Litter 10L $12.00</li></ul>
</section>
"""

TABLE_PAGE = """
<table>
  <tr><th>Item</th><th>Qty</th><th>Price</th></tr>
  <tr><td>Olive Oil 1L</td><td>1</td><td>14.99</td></tr>
  <tr><td>Sourdough Loaf</td><td>2</td><td>6.50</td></tr>
  <tr><td>Subtotal</td><td></td><td>27.99</td></tr>
</table>
"""

LIST_PAGE = """
<ul>
  <li>Fresh Bananas 1kg 3.20</li>
  <li>Full cream milk 2L $2.65</li>
  <li>Delivery fee 5.00</li>
  <li>Short 1.00</li>
</ul>
"""

BUNNINGS_PAGE = '<div><a href="/pine-sleeper_p0123"><h6>Pine Sleeper 200 x 75mm</h6></a><span>$12.50</span></div>'


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _names(products: List[ExtractedProduct]) -> List[str]:
    return [product.name for product in products]


class _FailingStrategy:
    name = "failing"

    def extract(self, soup, context):
        raise RuntimeError("selector engine exploded")


class _FixedStrategy:
    name = "fixed"

    def __init__(self, products):
        self.products = products

    def extract(self, soup, context):
        return list(self.products)


class TestStrategies:
    """Test cases for the individual DOM strategies."""

    def test_quantity_lines_scoped_to_order_section(self):
        """Lines outside the "What's in your order" section are ignored."""
        products = QuantityLineStrategy().extract(_soup(QUANTITY_PAGE), DOMContext.from_url(SHOP_URL))

        assert _names(products) == ["Dog Food", "Cat Litter 10L"]
        assert [product.quantity for product in products] == [2, 1]
        assert [product.price for product in products] == [pytest.approx(19.99), pytest.approx(12.0)]

    def test_data_attributes(self):
        html = '<div data-product-name="Organic Green Tea 100 bags" data-price="12.95" data-quantity="2">Tea</div>'

        (product,) = DataAttributeStrategy().extract(_soup(html), DOMContext.from_url(SHOP_URL))

        assert product.name == "Organic Green Tea 100 bags"
        assert product.price == pytest.approx(12.95)
        assert product.quantity == 2

    def test_data_testid_uses_element_text_and_nearby_price(self):
        html = '<li><span data-testid="product-name">Kitty Litter Clumping 15L</span> <b>$21.00</b></li>'

        (product,) = DataAttributeStrategy().extract(_soup(html), DOMContext.from_url(SHOP_URL))

        assert product.name == "Kitty Litter Clumping 15L"
        assert product.price == pytest.approx(21.0)

    def test_class_names_with_nearby_price(self, order_page_html, order_url):
        products = ClassNameStrategy().extract(_soup(order_page_html), DOMContext.from_url(order_url))

        assert _names(products) == ["Premium Dry Dog Food 10kg", "Catnip Toy Mouse"]
        assert [product.price for product in products] == [pytest.approx(54.99), pytest.approx(4.5)]

    def test_store_selectors_follow_hostname(self):
        """Store selectors apply to any hostname containing the store key."""
        strategy = ClassNameStrategy()

        bunnings = strategy.extract(_soup(BUNNINGS_PAGE), DOMContext.from_url("https://www.bunnings.com.au/order/123"))
        elsewhere = strategy.extract(_soup(BUNNINGS_PAGE), DOMContext.from_url(SHOP_URL))

        assert _names(bunnings) == ["Pine Sleeper 200 x 75mm"]
        assert elsewhere == []

    def test_selectors_for(self):
        strategy = ClassNameStrategy()

        assert strategy.selectors_for("shop.example.com") == list(COMMON_SELECTORS)
        assert strategy.selectors_for("www.bunnings.com.au")[0] == ".order-item h6.MuiTypography-subtitle2"
        assert strategy.selectors_for("www.amazon.com.au").count(".product-name") == 1

    def test_item_containers(self):
        html = '<div class="line-item"><span>Baby Wipes 80 Pack</span><span>x1</span><span>$7.00</span></div>'

        (product,) = ItemContainerStrategy().extract(_soup(html), DOMContext.from_url(SHOP_URL))

        assert product.name == "Baby Wipes 80 Pack"
        assert product.price == pytest.approx(7.0)

    def test_table_rows_skip_header_and_summary(self):
        products = TableRowStrategy().extract(_soup(TABLE_PAGE), DOMContext.from_url(SHOP_URL))

        assert _names(products) == ["Olive Oil 1L", "Sourdough Loaf"]
        assert [product.price for product in products] == [pytest.approx(14.99), pytest.approx(6.5)]

    def test_list_items(self):
        products = ListItemStrategy().extract(_soup(LIST_PAGE), DOMContext.from_url(SHOP_URL))

        assert _names(products) == ["Fresh Bananas 1kg", "Full cream milk 2L"]
        assert [product.price for product in products] == [pytest.approx(3.2), pytest.approx(2.65)]


class TestDOMFallbackExtractor:
    """Test cases for the strategy chain."""

    def test_order_page(self, order_page_html, order_url):
        before = REGISTRY.get_sample_value("orderlens_dom_strategy_hits_total", {"strategy": "class_name"}) or 0.0

        products = DOMFallbackExtractor().extract_from_dom(order_page_html, order_url)

        assert _names(products) == ["Premium Dry Dog Food 10kg", "Catnip Toy Mouse"]
        assert all(product.is_recurring for product in products)
        assert REGISTRY.get_sample_value("orderlens_dom_strategy_hits_total", {"strategy": "class_name"}) == before + 1

    def test_table_page_falls_through_to_rows(self):
        products = DOMFallbackExtractor().extract_from_dom(TABLE_PAGE, SHOP_URL)

        assert _names(products) == ["Olive Oil 1L", "Sourdough Loaf"]

    def test_first_matching_strategy_wins(self):
        """The quantity section wins over the later list-item strategy."""
        products = DOMFallbackExtractor().extract_from_dom(QUANTITY_PAGE, SHOP_URL)

        assert _names(products) == ["Dog Food", "Cat Litter 10L"]

    def test_failing_strategy_is_skipped(self):
        extractor = DOMFallbackExtractor(
            strategies=[_FailingStrategy(), _FixedStrategy([ExtractedProduct(name="Dog Food")])]
        )

        assert _names(extractor.extract_from_dom("<p>page</p>")) == ["Dog Food"]

    def test_results_are_capped(self):
        html = "".join(f'<span class="product-name">Dog Treat Flavour {index}</span>' for index in range(14))

        products = DOMFallbackExtractor().extract_from_dom(html, SHOP_URL)

        assert len(products) == 10
        assert products[0].name == "Dog Treat Flavour 0"

    @pytest.mark.parametrize("html", ["", "   ", "<p>Nothing here but a paragraph.</p>"])
    def test_no_products(self, html):
        assert DOMFallbackExtractor().extract_from_dom(html, SHOP_URL) == []

    @pytest.mark.asyncio
    async def test_async_extract(self, order_page_html, order_url):
        products = await DOMFallbackExtractor().extract(order_page_html, url=order_url)

        assert len(products) == 2
