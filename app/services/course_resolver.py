"""
Resolve a Shopify product to a LearnWorlds course id.

Direct product mappings always win. Products without one are only matched
by name when their title says "bundle": first an exact bundle-name match,
then the first configured bundle name contained in the title, in the
store's insertion order.
"""
import logging
from typing import Any, Optional

from app.services.mappings import MappingStores, normalize_bundle_name, normalize_product_id

logger = logging.getLogger(__name__)

BUNDLE_MARKER = "bundle"


class CourseResolver:
    def __init__(self, stores: MappingStores):
        self.stores = stores

    async def resolve(self, product_id: Any, product_title: Optional[str] = "") -> Optional[str]:
        """Course id for the product, or None when nothing matches."""
        product_id = normalize_product_id(product_id)
        course_id = await self.stores.product_courses.get(product_id)
        if course_id:
            logger.debug("Product %s mapped directly to course %s", product_id, course_id)
            return course_id

        title = product_title or ""
        if not title or BUNDLE_MARKER not in title.casefold():
            return None

        course_id = await self.find_course_for_bundle_name(title)
        if course_id:
            logger.info("Product %s (%s) matched bundle course %s", product_id, title, course_id)
        return course_id

    async def find_course_for_bundle_name(self, bundle_name: Optional[str]) -> Optional[str]:
        normalized = normalize_bundle_name(bundle_name)
        if not normalized:
            return None

        names = await self.stores.bundle_names.list()
        if normalized in names:
            return names[normalized]

        for name, course_id in names.items():
            if name and name in normalized:
                return course_id
        return None
