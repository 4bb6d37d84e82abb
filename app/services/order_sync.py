"""
Shopify order event -> LearnWorlds enrollment sync.

Only subscription orders (a tag containing "subscription") are acted on.
Line items are handled one after another; a failure on one item is logged
and recorded, and the loop moves on. A refund only unenrolls the line items
it names. Events are always acknowledged as handled so Shopify does not
retry into a persistent failure.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from app.errors import UpstreamAPIError
from app.integrations.shopify import (
    ENROLL_TOPICS,
    REFUNDS_CREATE,
    UNENROLL_TOPICS,
    ShopifyClient,
    ShopifyCustomer,
    ShopifyOrder,
    is_payment_settled,
    is_subscription_order,
    LineItem,
    is_supported_topic,
    parse_order,
    parse_refund_line_items,
)
from app.services.course_resolver import CourseResolver
from app.services.enrollment import EnrollmentOutcome, EnrollmentReconciler

logger = logging.getLogger(__name__)

ITEM_SKIPPED = "skipped"
ITEM_FAILED = "failed"

NOT_SUBSCRIPTION_MESSAGE = "Not a subscription order."
NO_REFUNDED_ITEMS_MESSAGE = "Refund covers no line items."


@dataclass
class LineItemResult:
    product_id: str
    title: str
    course_id: Optional[str]
    status: str
    detail: str = ""


@dataclass
class SyncResult:
    success: bool
    message: str
    order_id: Optional[str] = None
    items: List[LineItemResult] = field(default_factory=list)


class OrderSyncService:
    def __init__(
        self,
        resolver: CourseResolver,
        reconciler: EnrollmentReconciler,
        commerce: ShopifyClient,
    ):
        self.resolver = resolver
        self.reconciler = reconciler
        self.commerce = commerce

    async def _load_order(self, topic: str, payload: dict) -> ShopifyOrder:
        # Order webhooks carry the full order; refund webhooks only reference it
        if topic != REFUNDS_CREATE and "line_items" in payload:
            order = parse_order(payload)
            if order is not None:
                return order

        order_id = payload.get("order_id") if topic == REFUNDS_CREATE else payload.get("id")
        if order_id is None:
            raise UpstreamAPIError("Event payload carries no order id", context="shopify")
        return await self.commerce.get_order(str(order_id))

    @staticmethod
    def _refunded_items(order: ShopifyOrder, payload: dict) -> List[LineItem]:
        """Order line items named by the refund; shipping-only refunds name none"""
        refunded = parse_refund_line_items(payload)
        line_item_ids = {item.line_item_id for item in refunded if item.line_item_id}
        product_ids = {item.product_id for item in refunded if item.product_id}
        return [
            item for item in order.line_items
            if (item.line_item_id and item.line_item_id in line_item_ids) or item.product_id in product_ids
        ]

    async def handle_order_event(self, topic: str, payload: dict) -> SyncResult:
        if not is_supported_topic(topic):
            logger.info("Ignoring unsupported Shopify topic %s", topic)
            return SyncResult(success=True, message=f"Unsupported topic: {topic}")

        try:
            order = await self._load_order(topic, payload)
        except UpstreamAPIError as e:
            logger.error("Could not fetch order for %s event: %s", topic, e)
            return SyncResult(success=True, message=f"Order could not be fetched: {e}")

        if not is_subscription_order(order.tags):
            logger.info("Order %s is not a subscription order (tags: %s)", order.order_id, order.tags)
            return SyncResult(success=True, message=NOT_SUBSCRIPTION_MESSAGE, order_id=order.order_id)

        enroll = topic in ENROLL_TOPICS
        if enroll and not is_payment_settled(order.financial_status):
            logger.info(
                "Order %s not paid (financial_status=%s); enrollment skipped",
                order.order_id, order.financial_status,
            )
            return SyncResult(success=True, message="Order not paid; enrollment skipped.", order_id=order.order_id)

        customer = order.customer
        if customer is None or not customer.email:
            logger.warning("Order %s has no customer email", order.order_id)
            return SyncResult(success=True, message="Order has no customer email.", order_id=order.order_id)

        line_items = order.line_items
        if topic == REFUNDS_CREATE:
            line_items = self._refunded_items(order, payload)
            if not line_items:
                logger.info("Refund on order %s covers no line items; nothing to unenroll", order.order_id)
                return SyncResult(success=True, message=NO_REFUNDED_ITEMS_MESSAGE, order_id=order.order_id)

        logger.info(
            "Processing %s for order %s: %d line item(s), customer %s",
            topic, order.order_id, len(line_items), customer.email,
        )
        items = []
        for line_item in line_items:
            items.append(await self._sync_line_item(order.order_id, customer, line_item.product_id, line_item.title, enroll))

        action = "enrollment" if enroll else "unenrollment"
        return SyncResult(
            success=True,
            message=f"Processed {action} for {len(items)} line item(s).",
            order_id=order.order_id,
            items=items,
        )

    async def _sync_line_item(
        self,
        order_id: str,
        customer: ShopifyCustomer,
        product_id: str,
        title: str,
        enroll: bool,
    ) -> LineItemResult:
        course_id = await self.resolver.resolve(product_id, title)
        if not course_id:
            logger.info("Order %s: no course mapped for product %s (%s)", order_id, product_id, title)
            return LineItemResult(product_id, title, None, ITEM_SKIPPED, "No matching course")

        try:
            outcome = await self.reconciler.reconcile(
                customer.email,
                course_id,
                enrolled=enroll,
                first_name=customer.first_name,
                last_name=customer.last_name,
            )
        except UpstreamAPIError as e:
            logger.error(
                "Order %s: %s of %s in course %s failed: %s",
                order_id, "enrollment" if enroll else "unenrollment", customer.email, course_id, e,
            )
            return LineItemResult(product_id, title, course_id, ITEM_FAILED, str(e))

        return LineItemResult(product_id, title, course_id, outcome.value)

    async def handle_product_cancellation(
        self,
        customer: ShopifyCustomer,
        product_id: str,
        product_title: str = "",
    ) -> Optional[EnrollmentOutcome]:
        """
        Unenroll a customer from the course behind a single cancelled product.

        Returns None when no course matches the product. Upstream failures
        propagate to the caller.
        """
        course_id = await self.resolver.resolve(product_id, product_title)
        if not course_id:
            logger.info("No course mapped for cancelled product %s (%s)", product_id, product_title)
            return None

        logger.info("Processing unsubscription for customer %s from product %s", customer.id, product_id)
        outcome = await self.reconciler.unenroll(customer.email, course_id)
        logger.info("Customer %s unenrolled from course %s (%s)", customer.id, course_id, outcome.value)
        return outcome
