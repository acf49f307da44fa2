"""
URL-only classification of order pages.

URL scoring is max-based: several weak pattern matches never outrank a single
strong one. Exclusions are checked first and always win.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from ..config.config import DetectionConfig
from ..protocols import DetectionResult, PageSignal
from .patterns import (
    CONFIRMATION_URL_SIGNALS,
    EXCLUDED_URL_PATTERNS,
    ORDER_DETAILS_URL_SIGNALS,
    ORDER_RELATED_URL,
    SUPPORTED_STORES,
    Store,
)

_DEFAULTS = DetectionConfig()


def score_signals(value: str, signals: Iterable[PageSignal], threshold: float) -> DetectionResult:
    """Max-based scoring shared by the URL classifiers."""
    triggers: List[str] = []
    confidence = 0.0
    for signal in signals:
        if signal.matches(value):
            if signal.trigger not in triggers:
                triggers.append(signal.trigger)
            confidence = max(confidence, signal.confidence)
    return DetectionResult(is_likely=confidence >= threshold, confidence=confidence, triggers=tuple(triggers))


def is_excluded_url(url: str) -> bool:
    return any(pattern.search(url) for pattern in EXCLUDED_URL_PATTERNS)


def classify_url(
    url: str,
    *,
    config: Optional[DetectionConfig] = None,
    signals: Sequence[PageSignal] = CONFIRMATION_URL_SIGNALS,
) -> DetectionResult:
    """Classify a URL as a just-placed order confirmation page."""
    config = config or _DEFAULTS
    if not url or is_excluded_url(url):
        return DetectionResult.negative()
    return score_signals(url, signals, config.url_threshold)


def classify_order_details_url(
    url: str,
    *,
    config: Optional[DetectionConfig] = None,
    signals: Sequence[PageSignal] = ORDER_DETAILS_URL_SIGNALS,
) -> DetectionResult:
    """Classify a URL as a page showing a past order.

    The confirmation exclude list does not apply here: order-history and
    order-list URLs are exactly what this classifier is meant to recognise.
    """
    config = config or _DEFAULTS
    if not url:
        return DetectionResult.negative()
    return score_signals(url, signals, config.details_threshold)


def url_confidence_score(url: str) -> float:
    return classify_url(url).confidence


def looks_order_related(url: str) -> bool:
    return bool(url) and ORDER_RELATED_URL.search(url) is not None


def detect_store(url: str) -> Optional[Store]:
    """Return the supported store the URL belongs to, if any."""
    for store in SUPPORTED_STORES:
        if store.pattern.search(url or ""):
            return store
    return None
