"""
Default implementations of the collaborator protocols.

The orchestrator only depends on the protocols in ``orderlens.protocols``; the
classes here back the CLI and the test suite with in-process state.
"""

from __future__ import annotations

import os
from typing import Dict, Iterable, List, Optional, Sequence

import structlog

from .config.config import LLMConfig
from .protocols import DetectionOutcome, PageSnapshot, Subscription

logger = structlog.get_logger(__name__)

PROVIDER_KEY_ENV_VARS: Dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


class ConfigCredentialStore:
    """API key from LLMConfig, falling back to the provider's conventional env var."""

    def __init__(self, config: Optional[LLMConfig] = None, *, use_environment: bool = True) -> None:
        self.config = config or LLMConfig()
        self.use_environment = use_environment

    async def get_api_key(self) -> Optional[str]:
        if self.config.api_key:
            return self.config.api_key
        if not self.use_environment:
            return None
        value = os.environ.get(PROVIDER_KEY_ENV_VARS[self.config.provider], "").strip()
        return value or None


class InMemorySubscriptionStore:
    """Subscriptions held in memory, keyed by user id (None is the anonymous user)."""

    def __init__(self, subscriptions: Iterable[Subscription] = (), *, user_id: Optional[str] = None) -> None:
        self._by_user: Dict[Optional[str], List[Subscription]] = {}
        for subscription in subscriptions:
            self.add(subscription, user_id=user_id)

    def add(self, subscription: Subscription, *, user_id: Optional[str] = None) -> None:
        self._by_user.setdefault(user_id, []).append(subscription)

    async def list_subscriptions(self, user_id: Optional[str] = None) -> Sequence[Subscription]:
        return tuple(self._by_user.get(user_id, ()))


class StaticSettingsProvider:
    def __init__(self, show_on_order_details: bool = True) -> None:
        self._show_on_order_details = show_on_order_details

    async def show_on_order_details(self) -> bool:
        return self._show_on_order_details


class LoggingPresenter:
    """Presenter that writes the outcome to the structured log."""

    def __init__(self) -> None:
        self.logger = logger.bind(component="LoggingPresenter")

    async def present(self, outcome: DetectionOutcome) -> None:
        self.logger.info(
            "Order detected",
            source=outcome.source,
            retailer=outcome.analysis.retailer,
            order_number=outcome.analysis.order_number,
            products=[product.name for product in outcome.analysis.products],
        )


class RecordingPresenter:
    """Presenter that keeps every outcome it is given."""

    def __init__(self) -> None:
        self.outcomes: List[DetectionOutcome] = []

    async def present(self, outcome: DetectionOutcome) -> None:
        self.outcomes.append(outcome)


class StaticPage:
    """
    A page backed by fixed HTML.

    ``updates`` are served by successive snapshots, one per call, to mimic
    client-side rendering; the last document then stays current.
    """

    def __init__(self, url: str, html: str, title: str = "", updates: Sequence[str] = ()) -> None:
        self._url = url
        self.title = title
        self.html = html
        self._updates = list(updates)
        self.snapshot_count = 0

    @property
    def url(self) -> str:
        return self._url

    def navigate(self, url: str, *, html: Optional[str] = None, title: Optional[str] = None) -> None:
        self._url = url
        if html is not None:
            self.html = html
            self._updates = []
        if title is not None:
            self.title = title

    async def snapshot(self) -> PageSnapshot:
        self.snapshot_count += 1
        if self._updates:
            self.html = self._updates.pop(0)
        return PageSnapshot(url=self._url, title=self.title, html=self.html)
