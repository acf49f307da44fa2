"""
Detection pipeline driver for one page context.

One ``run()`` is one pass of the per-page state machine:

    debounce -> [wait for dynamic content] -> sanitize -> classify ->
    skip | order-details prompt | LLM analysis -> trust policy -> present

The orchestrator owns the debounce state for its page; create one instance per
page context. Every collaborator is injected, so the same driver backs the CLI
and the tests.
"""

from __future__ import annotations

import asyncio
import re
import time
from dataclasses import replace
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Sequence
from urllib.parse import urlparse

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from .collaborators import ConfigCredentialStore, LoggingPresenter, StaticSettingsProvider
from .config.config import Config
from .detection import classify_order_details_url, classify_page, looks_order_related, should_invoke_llm
from .extractor.dom_extractor import DOMFallbackExtractor
from .extractor.llm_extractor import LLMExtractor
from .extractor.sanitizer import PageSanitizer
from .observability import increment
from .protocols import (
    DetectionOutcome,
    ExtractedProduct,
    OrderAnalysis,
    PageSnapshot,
    PageSource,
    Presenter,
    SettingsProvider,
    SubscriptionStore,
)

logger = structlog.get_logger(__name__)

_WWW_PREFIX = re.compile(r"^www\.", re.IGNORECASE)


def retailer_from_url(url: str) -> Optional[str]:
    """Hostname without a leading "www." as a retailer guess."""
    hostname = urlparse(url).hostname
    return _WWW_PREFIX.sub("", hostname) if hostname else None


class DetectionOrchestrator:
    """Sequences classification, extraction and presentation for one page context."""

    def __init__(
        self,
        config: Optional[Config] = None,
        llm_extractor: Optional[LLMExtractor] = None,
        dom_extractor: Optional[DOMFallbackExtractor] = None,
        presenter: Optional[Presenter] = None,
        settings_provider: Optional[SettingsProvider] = None,
        subscription_store: Optional[SubscriptionStore] = None,
        user_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or Config()
        self.llm_extractor = llm_extractor or LLMExtractor(
            self.config.llm, credentials=ConfigCredentialStore(self.config.llm)
        )
        self.dom_extractor = dom_extractor or DOMFallbackExtractor()
        self.presenter = presenter or LoggingPresenter()
        self.settings_provider = settings_provider or StaticSettingsProvider()
        self.subscription_store = subscription_store
        self.user_id = user_id
        self.clock = clock
        self.sleep = sleep

        self.sanitizer = PageSanitizer(self.config.sanitizer)
        self.last_processed_url: Optional[str] = None
        self.last_processed_at: Optional[float] = None

    # ------------------------------------------------------------------ state

    def is_debounced(self, url: str, now: float) -> bool:
        if self.last_processed_url != url or self.last_processed_at is None:
            return False
        return (now - self.last_processed_at) * 1000 < self.config.orchestrator.debounce_ms

    async def wait_for_content(self, page: PageSource) -> PageSnapshot:
        """
        Wait for client-side rendering to settle.

        Always waits the minimum delay, then polls snapshots until the document
        is unchanged for the stability window or the maximum wait is reached.

        Returns:
            The last snapshot read
        """
        settings = self.config.orchestrator
        await self.sleep(settings.min_wait_seconds)
        elapsed = settings.min_wait_seconds

        snapshot = await page.snapshot()
        fingerprint = hash(snapshot.html)
        stable_for = 0.0
        while elapsed < settings.max_wait_seconds and stable_for < settings.stability_window_seconds:
            await self.sleep(settings.poll_interval_seconds)
            elapsed += settings.poll_interval_seconds
            snapshot = await page.snapshot()
            current = hash(snapshot.html)
            if current == fingerprint:
                stable_for += settings.poll_interval_seconds
            else:
                fingerprint = current
                stable_for = 0.0

        logger.debug("Dynamic content wait finished", waited_seconds=elapsed, stable=stable_for > 0)
        return snapshot

    # -------------------------------------------------------------- pipeline

    async def run(self, page: PageSource) -> Optional[DetectionOutcome]:
        """
        Run the detection pipeline once for the page's current URL.

        Returns:
            The outcome handed to the presenter, or None when the pass was
            skipped (debounced, not an order page, stale, nothing to offer) or
            failed
        """
        url = page.url
        now = self.clock()
        if self.is_debounced(url, now):
            logger.debug("Skipping recently processed URL", url=url)
            increment("pipeline_runs", labels={"result": "debounced"})
            return None

        self.last_processed_url = url
        self.last_processed_at = now

        bind_contextvars(page_url=url)
        try:
            outcome = await self._detect(page, url)
        except Exception as e:
            logger.error("Detection pipeline failed", error=str(e), error_type=type(e).__name__, exc_info=True)
            increment("pipeline_runs", labels={"result": "error"})
            return None
        finally:
            unbind_contextvars("page_url")

        return outcome

    async def _detect(self, page: PageSource, url: str) -> Optional[DetectionOutcome]:
        detection = self.config.detection
        details = classify_order_details_url(url, config=detection)

        if details.is_likely or looks_order_related(url):
            snapshot = await self.wait_for_content(page)
        else:
            snapshot = await page.snapshot()

        content = self.sanitizer.sanitize(snapshot.html)
        page_result = classify_page(url, snapshot.title, content.text, config=detection)
        increment("pages_classified", labels={"outcome": "likely" if page_result.is_likely else "unlikely"})
        logger.info(
            "Page classified",
            is_likely=page_result.is_likely,
            confidence=page_result.confidence,
            triggers=list(page_result.triggers),
            is_order_details=details.is_likely,
        )

        if details.is_likely and await self.settings_provider.show_on_order_details():
            analysis = OrderAnalysis(
                is_order_confirmation=True,
                confidence=details.confidence,
                retailer=retailer_from_url(url),
            )
            return await self._present_with_dom(page, url, snapshot, analysis, "order_details", details.triggers)

        if not should_invoke_llm(url, snapshot.title, content.text, config=detection, result=page_result):
            logger.info("Not an order page, skipping")
            increment("pipeline_runs", labels={"result": "skipped"})
            return None

        analysis = await self.llm_extractor.extract(content, heuristic_confidence=page_result.confidence)

        if analysis.is_order_confirmation:
            if analysis.products and analysis.method != "heuristic":
                return await self._finish(page, url, snapshot, analysis, "llm", page_result.triggers)
            # Heuristic product lines come from whitespace-collapsed text; the DOM replaces them
            source = "heuristic" if analysis.method == "heuristic" else "dom"
            analysis = replace(analysis, retailer=analysis.retailer or retailer_from_url(url))
            return await self._present_with_dom(page, url, snapshot, analysis, source, page_result.triggers)

        if page_result.is_likely and page_result.confidence >= self.config.orchestrator.heuristic_trust_threshold:
            logger.info("Using page heuristics over negative analysis", confidence=page_result.confidence)
            analysis = OrderAnalysis(
                is_order_confirmation=True,
                confidence=page_result.confidence,
                retailer=retailer_from_url(url),
            )
            return await self._present_with_dom(page, url, snapshot, analysis, "heuristic", page_result.triggers)

        logger.info("Not an order page according to analysis and heuristics")
        increment("pipeline_runs", labels={"result": "skipped"})
        return None

    async def _present_with_dom(
        self,
        page: PageSource,
        url: str,
        snapshot: PageSnapshot,
        analysis: OrderAnalysis,
        source: str,
        triggers: Sequence[str],
    ) -> Optional[DetectionOutcome]:
        products: List[ExtractedProduct] = await self.dom_extractor.extract(snapshot.html, url=url)
        if not products:
            products = [ExtractedProduct(name=self.config.orchestrator.placeholder_product_name, is_recurring=True)]
        return await self._finish(page, url, snapshot, analysis.with_products(products), source, triggers)

    async def _already_subscribed(self) -> set[str]:
        if self.subscription_store is None:
            return set()
        subscriptions = await self.subscription_store.list_subscriptions(self.user_id)
        return {subscription.product_name.casefold() for subscription in subscriptions}

    async def _finish(
        self,
        page: PageSource,
        url: str,
        snapshot: PageSnapshot,
        analysis: OrderAnalysis,
        source: str,
        triggers: Sequence[str],
    ) -> Optional[DetectionOutcome]:
        subscribed = await self._already_subscribed()
        if subscribed:
            remaining = [product for product in analysis.products if product.name.casefold() not in subscribed]
            if not remaining:
                logger.info("All products already subscribed, skipping")
                increment("pipeline_runs", labels={"result": "already_subscribed"})
                return None
            analysis = analysis.with_products(remaining)

        if page.url != url:
            logger.info("Discarding stale result after navigation", current_url=page.url)
            increment("pipeline_runs", labels={"result": "stale"})
            return None

        outcome = DetectionOutcome(
            analysis=analysis,
            page_url=url,
            page_title=snapshot.title,
            source=source,
            triggers=tuple(triggers),
        )
        await self.presenter.present(outcome)
        increment("pipeline_runs", labels={"result": "presented"})
        logger.info("Order presented", source=source, products=len(analysis.products))
        return outcome

    async def watch(self, page: PageSource, navigations: AsyncIterator[str]) -> List[DetectionOutcome]:
        """
        Run once, then again after every distinct URL change.

        Args:
            page: The live page
            navigations: Stream of observed page URLs (single-page-app navigation)

        Returns:
            Every outcome that was presented
        """
        outcomes: List[DetectionOutcome] = []
        last_url = page.url

        outcome = await self.run(page)
        if outcome is not None:
            outcomes.append(outcome)

        async for observed_url in navigations:
            if observed_url == last_url:
                continue
            last_url = observed_url
            await self.sleep(self.config.orchestrator.navigation_settle_seconds)
            outcome = await self.run(page)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

