"""
Declarative signal tables for order-page detection.

Each table is an ordered tuple of PageSignal records compiled once at import.
Control flow lives in the classifiers; extending detection to a new store or
phrasing means adding a row here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Tuple

from ..protocols import PageSignal


def _signal(pattern: str, trigger: str, confidence: float) -> PageSignal:
    return PageSignal(re.compile(pattern, re.IGNORECASE), trigger, confidence)


# --- URL: just-placed order confirmation ---

CONFIRMATION_URL_SIGNALS: Tuple[PageSignal, ...] = (
    _signal(r"amazon\.\w+(?:\.\w+)?/gp/buy/thankyou", "amazon-thankyou", 0.95),
    _signal(r"amazon\.\w+(?:\.\w+)?/gp/css/summary", "amazon-summary", 0.85),
    _signal(r"walmart\.com/checkout/order-confirmation", "walmart-confirmation", 0.95),
    _signal(r"target\.(?:com|com\.au)/(?:co-thankyou|spc/order/thankyou)", "target-thankyou", 0.95),
    _signal(r"target\.(?:com|com\.au)/checkout/order-confirmation", "target-checkout-confirmation", 0.98),
    _signal(r"kmart\.(?:com|com\.au)/checkout/order-confirmation", "kmart-confirmation", 0.98),
    _signal(r"kmart\.(?:com|com\.au).*/order.*thank", "kmart-thankyou", 0.95),
    _signal(r"/spc/order/thankyou", "spc-thankyou", 0.95),
    _signal(r"/checkout/order-confirmation", "checkout-order-confirmation", 0.95),
    _signal(r"/order-confirmation", "url-order-confirmation", 0.9),
    _signal(r"/order/confirm", "url-order-confirm", 0.85),
    _signal(r"/order/success", "url-order-success", 0.85),
    _signal(r"/checkout/complete", "url-checkout-complete", 0.85),
    _signal(r"/checkout/thank-?you", "url-thank-you", 0.8),
    _signal(r"/order/thank-?you", "url-order-thank-you", 0.9),
    _signal(r"/order/thank", "url-order-thank", 0.8),
    _signal(r"/thank-?you", "url-thank-you", 0.7),
    _signal(r"/purchase/complete", "url-purchase-complete", 0.85),
    _signal(r"/confirmation/?(?:[?#]|$)", "url-confirmation", 0.7),
    _signal(r"/checkouts?/[\w-]+/thank_you", "shopify-thank-you", 0.9),
    _signal(r"myshopify\.com/\d+/orders/\d+", "shopify-order", 0.9),
    _signal(r"/orders/\d+/authenticate", "shopify-authenticate", 0.85),
)

# --- URL: viewing a past order ---

ORDER_DETAILS_URL_SIGNALS: Tuple[PageSignal, ...] = (
    _signal(r"amazon\.\w+(?:\.\w+)?/gp/css/order-details", "amazon-order-details", 0.9),
    _signal(r"amazon\.\w+(?:\.\w+)?/gp/your-account/order-details", "amazon-order-details-2", 0.9),
    _signal(r"/orders/\d+", "order-details-id", 0.85),
    _signal(r"/order/\d+", "order-detailed-id", 0.85),
    _signal(r"/order-details", "order-details", 0.85),
    _signal(r"/order/view", "order-view", 0.85),
    _signal(r"[?&]order_?id=[\w-]+", "order-id-param", 0.8),
    _signal(r"myaccount/orders", "account-orders", 0.8),
    _signal(r"/order-history", "order-history", 0.8),
    _signal(r"/your-orders", "your-orders", 0.8),
)

# --- URL: never a confirmation page, regardless of other matches ---

EXCLUDED_URL_PATTERNS: Tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"/cart",
        r"/basket",
        r"/checkout/?(?:[?#]|$)",
        r"/dp/",
        r"/product/",
        r"/order-history",
        r"/orders/?(?:[?#]|$)",
        r"/account",
        r"/login",
        r"/signin",
        r"/sign-in",
        r"/register",
        r"/signup",
        r"/sign-up",
        r"/password",
    )
)

# Loose keyword check deciding whether a page deserves the dynamic-content wait.
ORDER_RELATED_URL = re.compile(r"order|checkout|thank|confirm|receipt|purchase", re.IGNORECASE)

# --- Title ---

TITLE_SIGNALS: Tuple[PageSignal, ...] = (
    _signal(r"order\s*confirm", "title-order-confirmation", 0.8),
    _signal(r"thank\s*you.*order", "title-thank-you-order", 0.8),
    _signal(r"order\s*placed", "title-order-placed", 0.85),
    _signal(r"purchase\s*confirm", "title-purchase-confirm", 0.8),
    _signal(r"order\s*complete", "title-order-complete", 0.85),
)

# --- Body text ---

CONTENT_SIGNALS: Tuple[PageSignal, ...] = (
    _signal(r"order\s*(?:#|number|no\.?)\s*[:\s]?\s*[\w-]+", "content-order-number", 0.7),
    _signal(r"confirmation\s*(?:#|number|no\.?)\s*[:\s]?\s*[\w-]+", "content-confirmation-number", 0.7),
    _signal(r"your\s*order\s*(?:has\s*been\s*)?(?:confirmed|placed|received)", "content-order-confirmed", 0.75),
    _signal(r"thank\s*you\s*for\s*(?:your\s*)?(?:order|purchase)", "content-thank-you", 0.65),
    _signal(r"confirmation\s*email\s*(?:has\s*been\s*)?sent", "content-email-sent", 0.6),
    _signal(r"we(?:'ve|’ve|.*have)\s*received\s*your\s*order", "content-order-received", 0.75),
)


# --- Stores and retailers ---


@dataclass(frozen=True)
class Store:
    name: str
    pattern: re.Pattern[str]


def _store(name: str, pattern: str) -> Store:
    return Store(name, re.compile(pattern, re.IGNORECASE))


SUPPORTED_STORES: Tuple[Store, ...] = (
    _store("Amazon", r"amazon\.(?:com|co\.uk|de|fr|es|it|ca|com\.au)"),
    _store("Walmart", r"walmart\.com"),
    _store("Target", r"target\.(?:com|com\.au)"),
    _store("Kmart", r"kmart\.(?:com|com\.au)"),
    _store("Best Buy", r"bestbuy\.com"),
    _store("eBay", r"ebay\.(?:com|co\.uk|de|com\.au)"),
    _store("Shopify", r"myshopify\.com"),
    _store("Etsy", r"etsy\.com"),
    _store("Nike", r"nike\.com"),
    _store("Apple", r"apple\.com"),
    _store("Costco", r"costco\.com"),
    _store("Kroger", r"kroger\.com"),
    _store("Whole Foods", r"wholefoodsmarket\.com"),
    _store("CVS", r"cvs\.com"),
    _store("Walgreens", r"walgreens\.com"),
    _store("Chewy", r"chewy\.com"),
    _store("Petco", r"petco\.com"),
    _store("Instacart", r"instacart\.com"),
    _store("DoorDash", r"doordash\.com"),
    _store("Uber Eats", r"ubereats\.com"),
    _store("Starbucks", r"starbucks\.com"),
    _store("Big W", r"bigw\.com\.au"),
    _store("Bunnings", r"bunnings\.com\.au"),
    _store("Woolworths", r"woolworths\.com\.au"),
)

# Brand names looked up in page text; table order is priority.
RETAILER_TEXT_PATTERNS: Tuple[Store, ...] = (
    _store("Amazon", r"amazon|amzn"),
    _store("eBay", r"\bebay\b"),
    _store("Walmart", r"walmart"),
    _store("Target", r"\btarget\b"),
    _store("Best Buy", r"best\s?buy"),
    _store("Apple", r"\bapple\b"),
    _store("Nike", r"\bnike\b"),
    _store("Costco", r"\bcostco\b"),
    _store("Chewy", r"\bchewy\b"),
    _store("Woolworths", r"\bwoolworths\b"),
    _store("Bunnings", r"\bbunnings\b"),
)

# Phrases the text-only heuristic requires before it extracts anything.
CONFIRMATION_PHRASES: Tuple[str, ...] = (
    "order confirmation",
    "thank you for your order",
    "order has been received",
    "order number",
    "receipt",
    "purchase confirmation",
    "order successfully placed",
    "we'll send you an email",
)
