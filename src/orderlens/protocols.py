"""
Core contracts and value objects for orderlens.

Every object defined here lives for a single detection pass: it is created by
one stage of the pipeline (classifier, sanitizer, extractor) and consumed by the
next. Nothing in this module persists between passes.

Architecture Overview:
- Sanitizer turns raw page HTML into a PageContent projection
- URL / page classifiers produce DetectionResult scores
- LLM, heuristic and DOM extractors all produce OrderAnalysis / ExtractedProduct
- The orchestrator talks to the outside world through the collaborator protocols
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

# ============================================================================
# Constants
# ============================================================================

MAX_PRODUCT_NAME_LENGTH = 200
MAX_PRODUCTS = 10
MIN_VALID_PRICE = 0.0
MAX_VALID_PRICE = 10_000.0
TRUNCATION_MARKER = "...[truncated]"


def is_valid_price(value: Any) -> bool:
    """Sanity bound against misparsed numbers (order numbers, postcodes...)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return MIN_VALID_PRICE < value < MAX_VALID_PRICE


# ============================================================================
# Detection
# ============================================================================


@dataclass(frozen=True)
class PageSignal:
    """A named regex whose match contributes evidence to a confidence score."""

    pattern: re.Pattern[str]
    trigger: str
    confidence: float

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"Signal '{self.trigger}' confidence must be between 0.0 and 1.0")

    def matches(self, value: str) -> bool:
        return self.pattern.search(value) is not None


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of a single classification call."""

    is_likely: bool
    confidence: float
    triggers: Tuple[str, ...] = ()

    @classmethod
    def negative(cls) -> DetectionResult:
        return cls(is_likely=False, confidence=0.0, triggers=())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isLikelyOrderConfirmation": self.is_likely,
            "confidence": self.confidence,
            "triggers": list(self.triggers),
        }


# ============================================================================
# Extraction
# ============================================================================


@dataclass(frozen=True)
class ExtractedProduct:
    """A purchased product as seen on an order page.

    The constructor normalises its input: the name is trimmed and bounded,
    out-of-range prices are dropped and a non-positive quantity becomes 1.
    """

    name: str
    price: Optional[float] = None
    quantity: int = 1
    is_recurring: bool = False
    category: Optional[str] = None
    suggested_frequency_days: Optional[int] = None

    def __post_init__(self) -> None:
        name = " ".join(str(self.name).split())[:MAX_PRODUCT_NAME_LENGTH].strip()
        if not name:
            raise ValueError("Product name must not be empty")
        object.__setattr__(self, "name", name)

        price = float(self.price) if is_valid_price(self.price) else None
        object.__setattr__(self, "price", price)

        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            object.__setattr__(self, "quantity", 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "isRecurring": self.is_recurring,
            "category": self.category,
            "suggestedFrequencyDays": self.suggested_frequency_days,
        }


def dedupe_products(products: Iterable[ExtractedProduct], *, limit: int = MAX_PRODUCTS) -> Tuple[ExtractedProduct, ...]:
    """Drop repeated names (case-insensitive, first occurrence wins) and cap the list."""
    seen: set[str] = set()
    unique: List[ExtractedProduct] = []
    for product in products:
        key = product.name.casefold()
        if key in seen:
            continue
        seen.add(key)
        unique.append(product)
        if len(unique) >= limit:
            break
    return tuple(unique)


@dataclass(frozen=True)
class OrderAnalysis:
    """The unit returned by both the LLM path and the heuristic fallback path."""

    is_order_confirmation: bool = False
    confidence: float = 0.0
    products: Tuple[ExtractedProduct, ...] = ()
    retailer: Optional[str] = None
    order_number: Optional[str] = None
    # "llm" or "heuristic" when produced by an extractor; not part of equality
    method: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))
        object.__setattr__(self, "products", dedupe_products(self.products))

    @classmethod
    def empty(cls) -> OrderAnalysis:
        return cls()

    def with_products(self, products: Sequence[ExtractedProduct]) -> OrderAnalysis:
        return replace(self, products=tuple(products))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isOrderConfirmation": self.is_order_confirmation,
            "confidence": self.confidence,
            "products": [product.to_dict() for product in self.products],
            "retailer": self.retailer,
            "orderNumber": self.order_number,
        }


@dataclass(frozen=True)
class PageContent:
    """Sanitized projections of a page snapshot."""

    html: str
    text: str


@dataclass(frozen=True)
class PageSnapshot:
    """One read of the live page."""

    url: str
    title: str
    html: str


@dataclass(frozen=True)
class Subscription:
    """Read-only view of an existing recurring-purchase subscription."""

    product_name: str
    retailer: str
    frequency_days: int = 30
    price: Optional[float] = None


@dataclass(frozen=True)
class DetectionOutcome:
    """What the orchestrator hands to the presentation layer."""

    analysis: OrderAnalysis
    page_url: str
    page_title: str
    source: str
    triggers: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis": self.analysis.to_dict(),
            "pageUrl": self.page_url,
            "pageTitle": self.page_title,
            "source": self.source,
            "triggers": list(self.triggers),
        }


# ============================================================================
# Collaborator Protocols
# ============================================================================


@runtime_checkable
class PageSource(Protocol):
    """The live page the orchestrator runs against."""

    @property
    def url(self) -> str:
        """Current location of the page."""
        ...

    async def snapshot(self) -> PageSnapshot:
        """Read the current url, title and document HTML."""
        ...


@runtime_checkable
class CredentialStore(Protocol):
    """Read-only key lookup for the LLM API credential."""

    async def get_api_key(self) -> Optional[str]: ...


@runtime_checkable
class SubscriptionStore(Protocol):
    """Read-only access to the user's current subscriptions."""

    async def list_subscriptions(self, user_id: Optional[str] = None) -> Sequence[Subscription]: ...


@runtime_checkable
class SettingsProvider(Protocol):
    """User settings consulted by the orchestrator."""

    async def show_on_order_details(self) -> bool: ...


@runtime_checkable
class Presenter(Protocol):
    """Presentation layer that offers the extracted products to the user."""

    async def present(self, outcome: DetectionOutcome) -> None: ...
