"""
HTML sanitation for order-page analysis.

Strips noise from raw page HTML and produces two projections:
- html: structure-preserving markup with only signal-bearing attributes kept
  (class, id, data-*, semantic/microdata attributes, href on anchors, src/alt on
  images), used as LLM context
- text: tag-free, whitespace-collapsed text, used by the classifiers and the
  heuristic extractor

Each step is a single regex pass over the whole document. Malformed markup
degrades to noisier output; the sanitizer never raises.
"""

from __future__ import annotations

import re
from typing import AbstractSet, Dict, List, Optional

import structlog

from ..config.config import SanitizerConfig
from ..protocols import TRUNCATION_MARKER, PageContent

logger = structlog.get_logger(__name__)

_DEFAULTS = SanitizerConfig()

SEMANTIC_ATTRIBUTES = frozenset(
    {
        "class",
        "id",
        "role",
        "aria-label",
        "aria-labelledby",
        "aria-describedby",
        "itemprop",
        "itemscope",
        "itemtype",
    }
)
TAG_SPECIFIC_ATTRIBUTES: Dict[str, frozenset[str]] = {
    "a": frozenset({"href"}),
    "img": frozenset({"src", "alt"}),
}

HTML_ENTITIES: Dict[str, str] = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
}
# Left encoded in the html projection so escaped text never turns into markup
MARKUP_ENTITIES = frozenset({"&amp;", "&lt;", "&gt;", "&quot;", "&#39;"})
_ENTITY = re.compile("|".join(re.escape(entity) for entity in HTML_ENTITIES))


def truncate(value: str, limit: int, marker: str = TRUNCATION_MARKER) -> str:
    """Cut ``value`` so that, marker included, it fits in ``limit`` characters."""
    if len(value) <= limit:
        return value
    return value[: max(0, limit - len(marker))] + marker


class PageSanitizer:
    """
    Regex-based HTML sanitizer.

    Patterns are compiled once per instance; the instance keeps simple counters
    so callers can see how often the degraded path was taken.
    """

    def __init__(self, config: Optional[SanitizerConfig] = None) -> None:
        self.config = config or _DEFAULTS

        self._block_patterns = [
            re.compile(rf"<{tag}\b[^>]*>.*?</{tag}\s*>", re.IGNORECASE | re.DOTALL)
            for tag in ("script", "style", "noscript", "svg")
        ]
        self._void_noise = re.compile(r"<(?:link|meta)\b[^>]*>", re.IGNORECASE)
        self._comment = re.compile(r"<!--.*?-->", re.DOTALL)
        self._doctype = re.compile(r"<!doctype[^>]*>", re.IGNORECASE)
        self._layout_chrome = re.compile(
            r"<(header|footer|nav|aside)\b[^>]*\bclass\s*=\s*[\"'][^\"']*(?:main|site|global)[^\"']*[\"'][^>]*>"
            r".*?</\1\s*>",
            re.IGNORECASE | re.DOTALL,
        )
        self._start_tag = re.compile(r"<([a-zA-Z][a-zA-Z0-9:-]*)((?:\s+[^<>]*?)?)\s*(/?)>")
        self._attribute = re.compile(
            r"([^\s=/>\"']+)(?:\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s\"'=<>`]+)))?"
        )
        self._any_tag = re.compile(r"<[^>]+>")
        self._empty_pair = re.compile(r"<([a-zA-Z][a-zA-Z0-9:-]*)\b[^<>]*>\s*</\1\s*>")
        self._inter_tag_ws = re.compile(r">\s+<")
        self._whitespace = re.compile(r"\s+")

        self._processed_count = 0
        self._degraded_count = 0

    # ------------------------------------------------------------------ steps

    def remove_noise(self, html: str) -> str:
        """Step 1: drop script/style/noscript/svg blocks, link/meta tags and comments."""
        html = self._comment.sub("", html)
        for pattern in self._block_patterns:
            html = pattern.sub("", html)
        html = self._void_noise.sub("", html)
        return self._doctype.sub("", html)

    def strip_layout_chrome(self, html: str) -> str:
        """Step 2: remove site-wide header/footer/nav/aside blocks, class-gated."""
        return self._layout_chrome.sub("", html)

    def _keep_attribute(self, tag: str, name: str) -> bool:
        name = name.lower()
        if name in SEMANTIC_ATTRIBUTES or name.startswith("data-"):
            return True
        return name in TAG_SPECIFIC_ATTRIBUTES.get(tag, frozenset())

    def _rebuild_tag(self, match: re.Match[str]) -> str:
        tag, raw_attrs, self_closing = match.group(1), match.group(2), match.group(3)
        lowered = tag.lower()
        kept: List[str] = []
        for attr in self._attribute.finditer(raw_attrs or ""):
            name = attr.group(1)
            if not self._keep_attribute(lowered, name):
                continue
            value = next((group for group in attr.groups()[1:] if group is not None), None)
            if value is None:
                kept.append(name)
            elif '"' in value and "'" not in value:
                kept.append(f"{name}='{value}'")
            else:
                kept.append(f'{name}="{value}"')
        attrs = "".join(f" {item}" for item in kept)
        return f"<{tag}{attrs}{' /' if self_closing else ''}>"

    def prune_attributes(self, html: str) -> str:
        """Step 3: keep only signal-bearing attributes on every start tag."""
        return self._start_tag.sub(self._rebuild_tag, html)

    @staticmethod
    def decode_entities(html: str, keep: AbstractSet[str] = frozenset()) -> str:
        """Step 4: decode the six common HTML entities in one pass, leaving those in ``keep`` encoded."""
        return _ENTITY.sub(lambda m: m.group(0) if m.group(0) in keep else HTML_ENTITIES[m.group(0)], html)

    def to_text(self, html: str) -> str:
        """Step 5: strip every remaining tag, then decode entities and collapse whitespace."""
        text = self.decode_entities(self._any_tag.sub(" ", html))
        return self._whitespace.sub(" ", text).strip()

    def compact_html(self, html: str) -> str:
        """Step 6: drop empty tag pairs (to a fixed point) and inter-tag whitespace."""
        for _ in range(10):
            compacted = self._empty_pair.sub("", html)
            if compacted == html:
                break
            html = compacted
        html = self._inter_tag_ws.sub("><", html)
        return self._whitespace.sub(" ", html).strip()

    # --------------------------------------------------------------- pipeline

    def sanitize(self, raw_html: str) -> PageContent:
        """Run steps 1-7 and return both projections."""
        self._processed_count += 1
        if not raw_html:
            return PageContent(html="", text="")

        try:
            html = self.remove_noise(raw_html)
            if self.config.strip_layout_chrome:
                html = self.strip_layout_chrome(html)
            html = self.prune_attributes(html)
            html = self.decode_entities(html, keep=MARKUP_ENTITIES)
            text = self.to_text(html)
            html = self.compact_html(html)
        except Exception as e:
            # Regex engines can still fail on pathological input (recursion, memory).
            self._degraded_count += 1
            logger.warning("HTML sanitation failed, using plain text projection", error=str(e))
            text = self._whitespace.sub(" ", self._any_tag.sub(" ", raw_html)).strip()
            html = text

        return PageContent(
            html=truncate(html, self.config.max_html_chars),
            text=truncate(text, self.config.max_text_chars),
        )

    def get_stats(self) -> dict:
        """Get processing statistics."""
        return {
            "processed_count": self._processed_count,
            "degraded_count": self._degraded_count,
            "degraded_rate": self._degraded_count / max(1, self._processed_count),
        }


_default_sanitizer: Optional[PageSanitizer] = None


def extract_page_content(raw_html: str, *, config: Optional[SanitizerConfig] = None) -> PageContent:
    """
    Convenience function for page sanitation.

    Args:
        raw_html: Raw page HTML (typically document.body.innerHTML)
        config: Optional sanitizer settings; defaults are used when omitted

    Returns:
        PageContent with the structured-HTML and plain-text projections
    """
    global _default_sanitizer
    if config is not None:
        return PageSanitizer(config).sanitize(raw_html)
    if _default_sanitizer is None:
        _default_sanitizer = PageSanitizer()
    return _default_sanitizer.sanitize(raw_html)


def html_to_text(html: str) -> str:
    """Plain-text projection of an HTML fragment without the other sanitation steps."""
    return PageSanitizer().to_text(html)
