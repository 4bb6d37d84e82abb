"""
Shopify webhook parsing/validation and Admin REST client.

Webhook auth: base64 HMAC-SHA256 of the raw body in X-Shopify-Hmac-Sha256.
API auth: offline Admin API access token in X-Shopify-Access-Token.
"""
import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx

from app.config import Settings
from app.errors import ConfigurationError, UpstreamAPIError

logger = logging.getLogger(__name__)

# Supported webhook topics
ORDERS_CREATE = "orders/create"
ORDERS_PAID = "orders/paid"
ORDERS_CANCELLED = "orders/cancelled"
REFUNDS_CREATE = "refunds/create"

ENROLL_TOPICS = {ORDERS_CREATE, ORDERS_PAID}
UNENROLL_TOPICS = {ORDERS_CANCELLED, REFUNDS_CREATE}
SUPPORTED_TOPICS = ENROLL_TOPICS | UNENROLL_TOPICS

SUBSCRIPTION_MARKER = "subscription"
SETTLED_FINANCIAL_STATUSES = {"paid", "authorized"}


@dataclass
class ShopifyCustomer:
    id: Optional[str]
    email: str
    first_name: str = ""
    last_name: str = ""


@dataclass
class LineItem:
    product_id: str
    title: str = ""
    line_item_id: str = ""


@dataclass
class ShopifyOrder:
    """Parsed order with the fields we care about"""
    order_id: str
    customer: Optional[ShopifyCustomer]
    line_items: List[LineItem] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    financial_status: str = ""


def verify_webhook_hmac(body: bytes, header_value: Optional[str], secret: str) -> bool:
    """Validate the X-Shopify-Hmac-Sha256 header against the app secret"""
    if not header_value or not secret:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, header_value)


def parse_tags(raw: Any) -> List[str]:
    """Shopify sends tags as "a, b, c"; some payloads carry a list."""
    if not raw:
        return []
    if isinstance(raw, str):
        return [t.strip() for t in raw.split(",") if t.strip()]
    return [str(t).strip() for t in raw if str(t).strip()]


def is_subscription_order(tags: List[str]) -> bool:
    return any(SUBSCRIPTION_MARKER in tag.lower() for tag in tags)


def is_payment_settled(financial_status: Optional[str]) -> bool:
    return (financial_status or "").lower() in SETTLED_FINANCIAL_STATUSES


def is_supported_topic(topic: str) -> bool:
    return topic in SUPPORTED_TOPICS


def parse_customer(raw: Any) -> Optional[ShopifyCustomer]:
    if not isinstance(raw, dict):
        return None
    customer_id = raw.get("id")
    return ShopifyCustomer(
        id=str(customer_id) if customer_id is not None else None,
        email=(raw.get("email") or "").strip(),
        first_name=raw.get("first_name") or "",
        last_name=raw.get("last_name") or "",
    )


def parse_order(payload: dict) -> Optional[ShopifyOrder]:
    """
    Parse a Shopify order (webhook body or REST resource) into structured data.

    Returns None when there is no order id to work with.
    """
    try:
        order_id = payload.get("id")
        if order_id is None:
            logger.warning("Shopify order payload missing id")
            return None

        customer = parse_customer(payload.get("customer"))
        if customer is not None and not customer.email and payload.get("email"):
            customer.email = payload["email"].strip()
        if customer is None and payload.get("email"):
            customer = ShopifyCustomer(id=None, email=payload["email"].strip())

        line_items = [
            LineItem(
                product_id=str(item.get("product_id") or ""),
                title=item.get("title") or "",
                line_item_id=str(item.get("id") or ""),
            )
            for item in payload.get("line_items") or []
            if isinstance(item, dict)
        ]

        return ShopifyOrder(
            order_id=str(order_id),
            customer=customer,
            line_items=line_items,
            tags=parse_tags(payload.get("tags")),
            financial_status=payload.get("financial_status") or "",
        )
    except (AttributeError, TypeError) as e:
        logger.error("Failed to parse Shopify order payload: %s", e)
        return None


def parse_refund_line_items(payload: dict) -> List[LineItem]:
    """
    Line items a refunds/create webhook actually refunds.

    Each refund_line_items entry references the order line item by
    line_item_id and usually embeds it under "line_item". A refund with no
    entries (shipping or adjustment only) refunds no products.
    """
    refunded = []
    for entry in payload.get("refund_line_items") or []:
        if not isinstance(entry, dict):
            continue
        embedded = entry.get("line_item") if isinstance(entry.get("line_item"), dict) else {}
        line_item_id = entry.get("line_item_id") or embedded.get("id")
        refunded.append(LineItem(
            product_id=str(embedded.get("product_id") or ""),
            title=embedded.get("title") or "",
            line_item_id=str(line_item_id or ""),
        ))
    return refunded


# ---------------------------------------------------------------------------
# Shopify Admin REST client
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ShopifyConfig:
    shop_domain: str
    access_token: str
    api_version: str = "2023-10"
    timeout_seconds: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShopifyConfig":
        return cls(
            shop_domain=settings.shopify_shop_domain,
            access_token=settings.shopify_access_token,
            api_version=settings.shopify_api_version,
            timeout_seconds=settings.http_timeout_seconds,
        )

    @property
    def base_url(self) -> str:
        domain = self.shop_domain.replace("https://", "").replace("http://", "").rstrip("/")
        return f"https://{domain}/admin/api/{self.api_version}"


class ShopifyClient:
    def __init__(self, config: ShopifyConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    async def get_order(self, order_id: str) -> ShopifyOrder:
        """Fetch full order details (customer, line items, tags, financial status)."""
        if not self.config.shop_domain or not self.config.access_token:
            raise ConfigurationError("Shopify shop domain or access token not configured", context="shopify")

        url = f"{self.config.base_url}/orders/{order_id}.json"
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                resp = await client.get(
                    url,
                    headers={
                        "X-Shopify-Access-Token": self.config.access_token,
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise UpstreamAPIError(f"Shopify order fetch failed: {e}", context="shopify") from e

        if resp.status_code != 200:
            raise UpstreamAPIError(
                f"Shopify order fetch failed: {resp.text[:200]}",
                status_code=resp.status_code,
                context="shopify",
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamAPIError("Shopify order fetch returned malformed JSON", context="shopify") from e

        order = parse_order(body.get("order") or {}) if isinstance(body, dict) else None
        if order is None:
            raise UpstreamAPIError("Shopify order fetch returned no order", context="shopify")
        return order
