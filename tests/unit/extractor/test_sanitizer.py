"""
Unit tests for PageSanitizer.
"""

from unittest.mock import patch

from hypothesis import given, settings
from hypothesis import strategies as st

from orderlens.config import SanitizerConfig
from orderlens.extractor.sanitizer import PageSanitizer, extract_page_content, html_to_text, truncate
from orderlens.protocols import TRUNCATION_MARKER

words = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789 $.", max_size=30)
entities = st.sampled_from(["&lt;", "&gt;", "&amp;", "&nbsp;", "&quot;", "&amp;lt;", "&lt;script&gt;x&lt;/script&gt;"])
phrases = st.lists(st.one_of(words, entities), max_size=4).map("".join)
elements = st.builds(
    lambda tag, cls, junk, text: f'<{tag} class="{cls}" style="{junk}" onclick="{junk}">{text}</{tag}>',
    tag=st.sampled_from(["div", "span", "p", "li", "b", "td"]),
    cls=st.sampled_from(["order-item", "product-name", "price", "x"]),
    junk=st.text(alphabet="abcdefghij:;", max_size=10),
    text=phrases,
)
documents = st.lists(
    st.one_of(elements, st.just("<script>var a = 1;</script>"), st.just("<!-- comment -->"), st.just("\n  ")),
    max_size=12,
).map("".join)


class TestPageSanitizer:
    """Test cases for PageSanitizer."""

    def test_removes_noise(self, order_page_html):
        """Scripts, styles, meta/link tags and the doctype are dropped."""
        content = PageSanitizer().sanitize(order_page_html)

        for fragment in ("<script", "<style", "<meta", "<link", "dataLayer", "DOCTYPE", "display: flex"):
            assert fragment not in content.html
            assert fragment not in content.text

    def test_strips_site_layout_chrome(self, order_page_html):
        """Site-wide header and footer blocks are removed when class-gated."""
        content = PageSanitizer().sanitize(order_page_html)

        assert "site-header" not in content.html
        assert "Friends" not in content.text
        assert "Cart" not in content.text

    def test_layout_chrome_can_be_kept(self, order_page_html):
        content = PageSanitizer(SanitizerConfig(strip_layout_chrome=False)).sanitize(order_page_html)

        assert "site-header" in content.html

    def test_unclassed_layout_elements_survive(self):
        content = PageSanitizer().sanitize("<header><h1>Your order</h1></header><nav class='breadcrumbs'>Home</nav>")

        assert "Your order" in content.text
        assert "Home" in content.text

    def test_prunes_attributes(self, order_page_html):
        """Only signal-bearing attributes remain."""
        content = PageSanitizer().sanitize(order_page_html)

        assert "style=" not in content.html
        assert "onclick" not in content.html
        assert 'class="product-name"' in content.html
        assert 'data-sku="DOG-10"' in content.html
        assert 'id="content"' in content.html

    def test_keeps_tag_specific_attributes(self):
        html = '<a href="/orders/1" target="_blank">Order</a><img src="/dog.png" alt="Dog food" width="50">'

        content = PageSanitizer().sanitize(html)

        assert content.html == '<a href="/orders/1">Order</a><img src="/dog.png" alt="Dog food">'

    def test_href_is_dropped_outside_anchors(self):
        content = PageSanitizer().sanitize('<div href="/a" itemprop="name">Dog</div>')

        assert 'href="/a"' not in content.html
        assert 'itemprop="name"' in content.html

    def test_decodes_entities(self):
        content = PageSanitizer().sanitize("<p>Fish &amp; Chips&nbsp;Co &quot;best&quot; &#39;ever&#39; &gt; 2</p>")

        assert content.text == "Fish & Chips Co \"best\" 'ever' > 2"

    def test_escaped_markup_stays_text(self):
        """Encoded tags are never decoded into live markup."""
        sanitizer = PageSanitizer()

        content = sanitizer.sanitize("<p>Use &lt;script&gt;alert(1)&lt;/script&gt; here</p>")

        assert content.html == "<p>Use &lt;script&gt;alert(1)&lt;/script&gt; here</p>"
        assert content.text == "Use <script>alert(1)</script> here"
        assert sanitizer.sanitize(content.html) == content

    def test_entities_are_decoded_once(self):
        content = PageSanitizer().sanitize("<p>&amp;lt;b&amp;gt;</p>")

        assert content.text == "&lt;b&gt;"

    def test_compacts_html(self, order_page_html):
        """Empty tag pairs collapse to a fixed point and inter-tag whitespace goes."""
        content = PageSanitizer().sanitize(order_page_html)

        assert "spacer" not in content.html
        assert "> <" not in content.html
        assert "\n" not in content.html

    def test_text_projection(self, order_page_html):
        content = PageSanitizer().sanitize(order_page_html)

        assert "Thank you for your order!" in content.text
        assert "Premium Dry Dog Food 10kg $54.99" in content.text
        assert "<" not in content.text
        assert "  " not in content.text

    def test_truncates_long_pages(self):
        """A 100,000 character body is cut to the caps with a marker."""
        content = PageSanitizer().sanitize("<div>" + "a" * 100_000 + "</div>")

        assert len(content.html) <= 60_010
        assert len(content.text) <= 30_010
        assert content.html.endswith(TRUNCATION_MARKER)
        assert content.text.endswith(TRUNCATION_MARKER)

    def test_configured_caps(self):
        config = SanitizerConfig(max_html_chars=500, max_text_chars=200)

        content = PageSanitizer(config).sanitize("<p>" + "word " * 1000 + "</p>")

        assert len(content.html) == 500
        assert len(content.text) == 200

    def test_empty_input(self):
        content = PageSanitizer().sanitize("")

        assert content.html == ""
        assert content.text == ""

    def test_degrades_to_plain_text(self, order_page_html):
        """A failing step falls back to the tag-stripped text."""
        sanitizer = PageSanitizer()

        with patch.object(sanitizer, "prune_attributes", side_effect=RuntimeError("boom")):
            content = sanitizer.sanitize(order_page_html)

        assert "Thank you for your order!" in content.text
        assert content.html == content.text
        assert sanitizer.get_stats()["degraded_count"] == 1

    def test_stats(self):
        sanitizer = PageSanitizer()
        sanitizer.sanitize("<p>a</p>")
        sanitizer.sanitize("<p>b</p>")

        stats = sanitizer.get_stats()

        assert stats["processed_count"] == 2
        assert stats["degraded_rate"] == 0.0

    @settings(max_examples=75)
    @given(document=documents)
    def test_idempotent(self, document):
        """Property: sanitizing sanitized output changes nothing."""
        sanitizer = PageSanitizer()
        once = sanitizer.sanitize(document)
        twice = sanitizer.sanitize(once.html)

        assert twice.html == once.html
        assert twice.text == once.text


class TestHelpers:
    """Test cases for the module-level helpers."""

    def test_truncate_keeps_short_values(self):
        assert truncate("abc", 10) == "abc"

    def test_truncate_includes_marker_in_limit(self):
        value = truncate("x" * 100, 40)

        assert len(value) == 40
        assert value.endswith(TRUNCATION_MARKER)

    def test_extract_page_content(self, order_page_html):
        content = extract_page_content(order_page_html)

        assert "Catnip Toy Mouse" in content.text

    def test_html_to_text(self):
        assert html_to_text("<p>A &amp; B</p><p>C</p>") == "A & B C"
