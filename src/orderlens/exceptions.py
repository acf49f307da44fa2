"""
Exception hierarchy for orderlens.

None of these are meant to reach the host process: the LLM extractor and the
orchestrator catch them at their boundaries and fall back.
"""

from __future__ import annotations

from typing import Optional


class OrderLensError(Exception):
    """Base class for all orderlens errors."""


class ConfigurationError(OrderLensError):
    """Raised when configuration is missing or inconsistent."""


class LLMRequestError(OrderLensError):
    """The model endpoint could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, *, status: Optional[int] = None, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.provider = provider
