"""
Test configuration for orderlens.

Shared fixtures: default configuration, saved order pages and fakes for the
collaborators the orchestrator depends on.
"""

# Standard library imports
import asyncio
from typing import AsyncGenerator, List
from unittest.mock import AsyncMock

# Third-party imports
import pytest
import pytest_asyncio

# Local imports
from orderlens.collaborators import RecordingPresenter, StaticPage, StaticSettingsProvider
from orderlens.config import Config, LLMConfig

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")
    config.addinivalue_line("markers", "property: Hypothesis property-based tests")


# ============================================================================
# Core Test Fixtures
# ============================================================================


@pytest_asyncio.fixture(autouse=True)
async def cleanup_tasks() -> AsyncGenerator[None, None]:
    """Cancel any asyncio task a test leaves behind."""
    tasks_before = asyncio.all_tasks()
    yield
    new_tasks = asyncio.all_tasks() - tasks_before

    for task in new_tasks:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep provider keys and ORDERLENS_* variables from the host out of the tests."""
    for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GEMINI_API_KEY", "ORDERLENS_LLM__API_KEY"):
        monkeypatch.delenv(name, raising=False)
    yield


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def config() -> Config:
    """Default configuration without an LLM credential."""
    return Config()


@pytest.fixture
def llm_config() -> LLMConfig:
    """OpenAI configuration with a test key."""
    return LLMConfig(provider="openai", api_key="sk-test")


# ============================================================================
# Page Fixtures
# ============================================================================

ORDER_URL = "https://www.petshop.example.com/checkout/thank-you"
ORDER_TITLE = "Order Confirmation - Example Pet Store"


@pytest.fixture
def order_url() -> str:
    return ORDER_URL


@pytest.fixture
def order_page_html() -> str:
    """A confirmation page with two products, layout chrome and noise."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <title>Order Confirmation - Example Pet Store</title>
        <meta name="viewport" content="width=device-width">
        <link rel="stylesheet" href="/styles.css">
        <script>window.dataLayer = [{"event": "purchase"}];</script>
        <style>.order-item { display: flex; }</style>
    </head>
    <body>
        <header class="site-header"><nav><a href="/">Home</a> <a href="/cart">Cart</a></nav></header>
        <main id="content">
            <h1 style="color: green" onclick="track()">Thank you for your order!</h1>
            <p>Order #EX-100245</p>
            <p>A confirmation email has been sent to you with the full details of your purchase.
               Your items will be shipped to 12 Example Street, Springfield within 3-5 business days.</p>
            <div class="order-items">
                <div class="order-item" data-sku="DOG-10">
                    <span class="product-name">Premium Dry Dog Food 10kg</span>
                    <span class="price">$54.99</span>
                </div>
                <div class="order-item" data-sku="CAT-TOY">
                    <span class="product-name">Catnip Toy Mouse</span>
                    <span class="price">$4.50</span>
                </div>
            </div>
            <div class="order-total">Total: $59.49</div>
            <div class="spacer"><span></span></div>
        </main>
        <footer class="site-footer">&copy; Example Pet Store &amp; Friends</footer>
    </body>
    </html>
    """


@pytest.fixture
def product_page_html() -> str:
    """A product detail page with no order signals."""
    return """
    <html><head><title>Stainless Steel Water Bottle</title></head>
    <body><h1>Stainless Steel Water Bottle</h1><p>$24.95</p><button>Add to cart</button></body></html>
    """


@pytest.fixture
def order_page(order_url, order_page_html) -> StaticPage:
    return StaticPage(url=order_url, html=order_page_html, title=ORDER_TITLE)


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture
def settings_provider() -> StaticSettingsProvider:
    return StaticSettingsProvider(show_on_order_details=True)


@pytest.fixture
def fake_sleep() -> AsyncMock:
    """Sleep replacement that returns immediately and records the requested delays."""
    return AsyncMock(return_value=None)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.readings: List[float] = []

    def __call__(self) -> float:
        self.readings.append(self.now)
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
