"""
Page-level order-confirmation classifier.

Unlike the URL layer, page confidence is additive across three independent
layers (URL, title, body text) and capped at 1.0. The decision threshold
depends on which layers fired: content-only evidence (any page mentioning an
"order number") needs a higher bar than a URL or title match.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence, Set

import structlog

from ..config.config import DetectionConfig
from ..protocols import DetectionResult, PageSignal
from .patterns import CONTENT_SIGNALS, TITLE_SIGNALS
from .url_classifier import classify_url

logger = structlog.get_logger(__name__)

_DEFAULTS = DetectionConfig()


class SignalLayer(Enum):
    URL = "url"
    TITLE = "title"
    CONTENT = "content"


STRONG_LAYERS = frozenset({SignalLayer.URL, SignalLayer.TITLE})


def passes_threshold(confidence: float, has_strong_signal: bool, config: Optional[DetectionConfig] = None) -> bool:
    """Apply the provenance-dependent decision threshold."""
    config = config or _DEFAULTS
    threshold = config.strong_signal_threshold if has_strong_signal else config.content_only_threshold
    return confidence >= threshold


def _collect(value: str, signals: Sequence[PageSignal], triggers: List[str]) -> float:
    total = 0.0
    for signal in signals:
        if value and signal.matches(value):
            triggers.append(signal.trigger)
            total += signal.confidence
    return total


def classify_page(
    url: str,
    title: str,
    body_text: str,
    *,
    config: Optional[DetectionConfig] = None,
) -> DetectionResult:
    """Combine URL, title and content signals into one detection result."""
    config = config or _DEFAULTS
    triggers: List[str] = []
    layers: Set[SignalLayer] = set()
    total = 0.0

    url_result = classify_url(url, config=config)
    if url_result.is_likely:
        triggers.extend(url_result.triggers)
        total += url_result.confidence
        layers.add(SignalLayer.URL)

    title_score = _collect(title, TITLE_SIGNALS, triggers)
    if title_score:
        total += title_score
        layers.add(SignalLayer.TITLE)

    content_score = _collect(body_text, CONTENT_SIGNALS, triggers)
    if content_score:
        total += content_score
        layers.add(SignalLayer.CONTENT)

    confidence = min(total, 1.0)
    has_strong_signal = bool(layers & STRONG_LAYERS)
    is_likely = bool(triggers) and passes_threshold(confidence, has_strong_signal, config)

    logger.debug(
        "Page classified",
        url=url,
        confidence=confidence,
        triggers=triggers,
        layers=sorted(layer.value for layer in layers),
        is_likely=is_likely,
    )
    return DetectionResult(is_likely=is_likely, confidence=confidence, triggers=tuple(triggers))


def should_invoke_llm(
    url: str,
    title: str,
    body_text: str,
    *,
    config: Optional[DetectionConfig] = None,
    result: Optional[DetectionResult] = None,
) -> bool:
    """Permissive gate for the LLM call: a low score or any single trigger passes."""
    config = config or _DEFAULTS
    if result is None:
        result = classify_page(url, title, body_text, config=config)
    return result.confidence >= config.llm_invoke_threshold or len(result.triggers) >= 1
