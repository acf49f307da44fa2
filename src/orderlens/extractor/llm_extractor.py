"""
LLM-assisted order extraction.

Builds a prompt from sanitized page content, calls the configured model
endpoint and turns its (possibly malformed) answer into an OrderAnalysis.
Every failure mode (missing credential, non-2xx status, network error, garbage
JSON) ends in the heuristic extractor or the empty analysis; nothing is raised
to the caller.
"""

from __future__ import annotations

import asyncio
import json
import math
import re
import time
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

import aiohttp
import structlog

from ..config.config import LLMConfig
from ..exceptions import LLMRequestError
from ..observability import increment, observe
from ..protocols import CredentialStore, ExtractedProduct, OrderAnalysis, PageContent, is_valid_price
from .heuristic_extractor import extract_heuristically

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """You are an assistant that analyzes e-commerce page content to decide whether it is an order confirmation page and to extract the purchased products.

Your task is to:
1. Determine if the page content represents an order confirmation or receipt for a purchase that was just placed or a past order being viewed
2. Extract every purchased product with its name, unit price and quantity
3. Identify the retailer name and the order number, if shown
4. Decide whether each product is a recurring purchase (consumable, likely to be bought again) or a one-time purchase (durable)
5. For recurring products, suggest a reorder frequency in days

Extraction strategy:
- Product names are usually near a price, a quantity ("Qty: 2", "2 x") or an image
- Ignore navigation, recommendations ("customers also bought"), totals, shipping, taxes and discounts
- Use the item's own price, not the order total

Respond with a JSON object in this exact format:
{
  "isOrderConfirmation": boolean,
  "confidence": number (0-1),
  "products": [
    {
      "name": string,
      "price": number | null,
      "quantity": number,
      "isRecurring": boolean,
      "category": string | null,
      "suggestedFrequencyDays": number | null
    }
  ],
  "retailer": string | null,
  "orderNumber": string | null
}

Guidelines for isRecurring:
- TRUE for: food, beverages, pet supplies, baby items, toiletries, cleaning supplies, vitamins, medications, office supplies, batteries
- FALSE for: electronics, furniture, appliances, clothing, books, jewelry, one-time tools

Guidelines for suggestedFrequencyDays: 7 weekly, 14 bi-weekly, 30 monthly, 60 every two months, 90 quarterly; null for one-time purchases.

Only output the JSON object, no additional text."""

DEFAULT_MODELS: Dict[str, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-haiku-20240307",
    "gemini": "gemini-1.5-flash",
}
DEFAULT_ENDPOINTS: Dict[str, str] = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "anthropic": "https://api.anthropic.com/v1/messages",
    "gemini": "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
}
ANTHROPIC_VERSION = "2023-06-01"
PLACEHOLDER_PRODUCT_NAME = "Unknown Product"

_CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_OPEN_FENCE = re.compile(r"^\s*```(?:json|JSON)?\s*")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_SMART_QUOTES = str.maketrans({"“": '"', "”": '"', "„": '"'})
# Opening braces tried before giving up on an answer
MAX_OBJECT_CANDIDATES = 25

# ============================================================================
# Prompt and request construction
# ============================================================================


def build_prompt(content: PageContent, max_chars: int = 50_000) -> str:
    text = content.text[:max_chars]
    return (
        "Analyze this e-commerce page content and determine if it's an order confirmation:\n\n"
        f"PAGE CONTENT:\n{text}\n\n"
        "Respond with only a JSON object in the specified format."
    )


def build_request(config: LLMConfig, api_key: str, prompt: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
    """Return (url, headers, json body) for the configured provider."""
    model = config.model or DEFAULT_MODELS[config.provider]
    endpoint = (config.endpoint or DEFAULT_ENDPOINTS[config.provider]).format(model=model)

    if config.provider == "openai":
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        body: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": config.temperature,
            "max_tokens": config.max_output_tokens,
        }
    elif config.provider == "anthropic":
        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        body = {
            "model": model,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
            "max_tokens": config.max_output_tokens,
        }
    else:
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}
        body = {
            "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": config.temperature,
                "maxOutputTokens": config.max_output_tokens,
            },
        }
    return endpoint, headers, body


# ============================================================================
# Response parsing
# ============================================================================


def _dig(payload: Any, path: Tuple[Any, ...]) -> Any:
    for key in path:
        if isinstance(key, int):
            if not isinstance(payload, list) or len(payload) <= key:
                return None
        elif not isinstance(payload, dict):
            return None
        payload = payload[key] if isinstance(key, int) else payload.get(key)
    return payload


def _first_text(payload: Any) -> Optional[str]:
    """Depth-first search for the first text-like string field."""
    if isinstance(payload, dict):
        for key in ("text", "content", "output_text", "completion"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
        for value in payload.values():
            found = _first_text(value)
            if found:
                return found
    elif isinstance(payload, list):
        for item in payload:
            found = _first_text(item)
            if found:
                return found
    return None


_PROVIDER_TEXT_PATHS: Dict[str, Tuple[Any, ...]] = {
    "openai": ("choices", 0, "message", "content"),
    "anthropic": ("content", 0, "text"),
    "gemini": ("candidates", 0, "content", "parts", 0, "text"),
}


def extract_response_text(provider: str, payload: Any) -> str:
    """First text field of the response envelope, whatever the provider shape."""
    path = _PROVIDER_TEXT_PATHS.get(provider)
    if path is not None:
        value = _dig(payload, path)
        if isinstance(value, str):
            return value
    return _first_text(payload) or ""


def strip_code_fences(text: str) -> str:
    match = _CODE_FENCE.search(text)
    if match:
        return match.group(1).strip()
    # A truncated answer may open a fence and never close it
    return _OPEN_FENCE.sub("", text).strip()


def iter_balanced_objects(text: str, max_candidates: int = MAX_OBJECT_CANDIDATES):
    """Yield balanced ``{...}`` spans in order of their opening brace, trying at most ``max_candidates`` braces."""
    start = text.find("{")
    tried = 0
    while start != -1 and tried < max_candidates:
        tried += 1
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    yield text[start : index + 1]
                    break
        start = text.find("{", start + 1)


def repair_json(candidate: str) -> str:
    """Fix the two breakages models produce most: smart quotes and trailing commas."""
    return _TRAILING_COMMA.sub(r"\1", candidate.translate(_SMART_QUOTES))


def load_first_object(text: str) -> Optional[Dict[str, Any]]:
    for candidate in iter_balanced_objects(text):
        for attempt in (candidate, repair_json(candidate)):
            try:
                parsed = json.loads(attempt)
            except (ValueError, RecursionError):
                continue
            if isinstance(parsed, dict):
                return parsed
    return None


def _field(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not isinstance(value, float) or math.isfinite(value)


def _optional_str(value: Any, *, allow_number: bool = False) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if allow_number and _is_number(value) and float(value).is_integer():
        return str(int(value))
    return None


def coerce_product(entry: Any) -> Optional[ExtractedProduct]:
    """Coerce one untrusted product entry; non-objects are dropped."""
    if not isinstance(entry, dict):
        return None

    name = _field(entry, "name", "title")
    if not isinstance(name, str) or not name.strip():
        name = PLACEHOLDER_PRODUCT_NAME

    price = _field(entry, "price")
    quantity = _field(entry, "quantity", "qty")
    is_recurring = _field(entry, "isRecurring", "is_recurring")
    category = _field(entry, "category")
    frequency = _field(entry, "suggestedFrequencyDays", "suggested_frequency_days")

    return ExtractedProduct(
        name=name,
        price=float(price) if is_valid_price(price) else None,
        quantity=int(quantity) if _is_number(quantity) and quantity >= 1 else 1,
        is_recurring=is_recurring if isinstance(is_recurring, bool) else False,
        category=category.strip() if isinstance(category, str) and category.strip() else None,
        suggested_frequency_days=int(frequency) if _is_number(frequency) and frequency >= 1 else None,
    )


def coerce_order_analysis(data: Any) -> OrderAnalysis:
    """Coerce an untyped document to OrderAnalysis with per-field defaults."""
    if not isinstance(data, dict):
        return OrderAnalysis.empty()

    confirmed = _field(data, "isOrderConfirmation", "is_order_confirmation")
    confidence = _field(data, "confidence")
    raw_products = _field(data, "products", "items")

    products: List[ExtractedProduct] = []
    if isinstance(raw_products, list):
        for entry in raw_products:
            product = coerce_product(entry)
            if product is not None:
                products.append(product)

    return OrderAnalysis(
        is_order_confirmation=confirmed if isinstance(confirmed, bool) else False,
        confidence=float(confidence) if _is_number(confidence) else 0.0,
        products=tuple(products),
        retailer=_optional_str(_field(data, "retailer", "store")),
        order_number=_optional_str(_field(data, "orderNumber", "order_number"), allow_number=True),
    )


def parse_order_analysis(text: str) -> OrderAnalysis:
    """Parse a model answer; malformed or missing JSON yields the empty analysis."""
    if not text:
        return OrderAnalysis.empty()
    data = load_first_object(strip_code_fences(text))
    if data is None:
        logger.debug("No JSON object found in model response", preview=text[:200])
        return OrderAnalysis.empty()
    return coerce_order_analysis(data)


def apply_heuristic_override(
    analysis: OrderAnalysis, heuristic_confidence: float, threshold: float = 0.9
) -> OrderAnalysis:
    """Trust a very strong independent heuristic over a negative (possibly lazy) model answer."""
    if not analysis.is_order_confirmation and heuristic_confidence >= threshold:
        logger.info(
            "Overriding negative analysis with heuristic result",
            heuristic_confidence=heuristic_confidence,
            threshold=threshold,
        )
        return replace(analysis, is_order_confirmation=True, confidence=heuristic_confidence)
    return analysis


# ============================================================================
# Extractor
# ============================================================================


class LLMExtractor:
    """Order extractor backed by an external language model."""

    name = "llm"

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        credentials: Optional[CredentialStore] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config or LLMConfig()
        self.credentials = credentials
        self.session = session
        self._owns_session = False
        self.logger = logger.bind(component="LLMExtractor", provider=self.config.provider)

    async def initialize(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds))
            self._owns_session = True

    async def close(self) -> None:
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None
        self._owns_session = False

    async def __aenter__(self) -> "LLMExtractor":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _get_api_key(self) -> Optional[str]:
        if self.credentials is not None:
            return await self.credentials.get_api_key()
        return self.config.api_key

    async def _post(self, session: aiohttp.ClientSession, url: str, headers: Dict[str, str], body: Dict[str, Any]) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        async with session.post(url, json=body, headers=headers, timeout=timeout) as response:
            if not 200 <= response.status < 300:
                detail = (await response.text())[:500]
                raise LLMRequestError(
                    f"Model endpoint returned {response.status}: {detail}",
                    status=response.status,
                    provider=self.config.provider,
                )
            return await response.json(content_type=None)

    async def request(self, api_key: str, prompt: str) -> Any:
        """Send one request to the model endpoint and return the decoded envelope."""
        url, headers, body = build_request(self.config, api_key, prompt)
        start_time = time.time()
        try:
            if self.session is not None:
                return await self._post(self.session, url, headers, body)
            async with aiohttp.ClientSession() as session:
                return await self._post(session, url, headers, body)
        finally:
            observe("llm_latency_seconds", time.time() - start_time)

    async def extract(self, content: PageContent, *, heuristic_confidence: float = 0.0) -> OrderAnalysis:
        """
        Extract an order analysis from sanitized page content.

        Args:
            content: Sanitized page projections
            heuristic_confidence: Independent page-classifier confidence used for
                the override tie-break

        Returns:
            OrderAnalysis from the model, or from the heuristic extractor when
            the model is unavailable
        """
        api_key = await self._get_api_key()
        if not api_key:
            self.logger.info("No LLM credential configured, using heuristic extraction")
            increment("llm_requests", labels={"provider": self.config.provider, "status": "no_credentials"})
            analysis = extract_heuristically(content.text)
        else:
            analysis = await self._extract_with_model(api_key, content)

        return apply_heuristic_override(analysis, heuristic_confidence, self.config.heuristic_override_threshold)

    async def _extract_with_model(self, api_key: str, content: PageContent) -> OrderAnalysis:
        prompt = build_prompt(content, self.config.max_prompt_chars)
        try:
            payload = await self.request(api_key, prompt)
            analysis = parse_order_analysis(extract_response_text(self.config.provider, payload))
        except LLMRequestError as e:
            self.logger.warning("Model endpoint error, using heuristic extraction", status=e.status, error=str(e))
            increment("llm_requests", labels={"provider": self.config.provider, "status": "http_error"})
            return extract_heuristically(content.text)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.logger.warning(
                "Model request failed, using heuristic extraction",
                error=str(e),
                error_type=type(e).__name__,
            )
            increment("llm_requests", labels={"provider": self.config.provider, "status": "error"})
            return extract_heuristically(content.text)
        except Exception as e:
            self.logger.error(
                "Unexpected failure handling model response, using heuristic extraction",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            increment("llm_requests", labels={"provider": self.config.provider, "status": "error"})
            return extract_heuristically(content.text)

        increment("llm_requests", labels={"provider": self.config.provider, "status": "ok"})
        self.logger.info(
            "Model analysis completed",
            is_order_confirmation=analysis.is_order_confirmation,
            confidence=analysis.confidence,
            products=len(analysis.products),
        )
        return replace(analysis, method="llm")
