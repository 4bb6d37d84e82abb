"""
FastAPI dependency providers.

Stores are built once per process; clients and services are cheap and
built per request from settings. Tests swap any of these through
app.dependency_overrides.
"""
from functools import lru_cache

from fastapi import Depends

from app.config import settings
from app.integrations.learnworlds import LearnWorldsClient, LearnWorldsConfig
from app.integrations.shopify import ShopifyClient, ShopifyConfig
from app.services.course_resolver import CourseResolver
from app.services.enrollment import EnrollmentReconciler
from app.services.mappings import MappingStores
from app.services.order_sync import OrderSyncService


@lru_cache
def get_mapping_stores() -> MappingStores:
    return MappingStores.from_settings(settings)


def get_course_resolver(stores: MappingStores = Depends(get_mapping_stores)) -> CourseResolver:
    return CourseResolver(stores)


def get_learnworlds_client() -> LearnWorldsClient:
    return LearnWorldsClient(LearnWorldsConfig.from_settings(settings))


def get_shopify_client() -> ShopifyClient:
    return ShopifyClient(ShopifyConfig.from_settings(settings))


def get_reconciler(client: LearnWorldsClient = Depends(get_learnworlds_client)) -> EnrollmentReconciler:
    return EnrollmentReconciler(client)


def get_order_sync_service(
    resolver: CourseResolver = Depends(get_course_resolver),
    reconciler: EnrollmentReconciler = Depends(get_reconciler),
    commerce: ShopifyClient = Depends(get_shopify_client),
) -> OrderSyncService:
    return OrderSyncService(resolver, reconciler, commerce)
