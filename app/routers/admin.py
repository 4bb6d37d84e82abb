"""
Mapping administration: product -> course, bundle -> components,
bundle name -> course. Guarded by the admin key when one is configured.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.dependencies import require_admin_key
from app.dependencies import get_course_resolver, get_learnworlds_client, get_mapping_stores
from app.errors import MappingValidationError
from app.integrations.learnworlds import LearnWorldsClient
from app.schemas.mappings import (
    BundleComponentsCreate,
    BundleComponentsResponse,
    BundleNameLookupResponse,
    BundleNameMappingCreate,
    ConnectionStatusResponse,
    MappingListResponse,
    ProductCourseMappingCreate,
    SuccessResponse,
)
from app.services.course_resolver import CourseResolver
from app.services.mappings import MappingStore, MappingStores, normalize_bundle_name, normalize_product_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(require_admin_key)])


async def _set_mapping(store: MappingStore, key, value) -> SuccessResponse:
    try:
        persisted = await store.set(key, value)
    except MappingValidationError as e:
        logger.info("Rejected %s mapping write: %s", store.name, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")
    return SuccessResponse(persisted=persisted)


# Product -> course


@router.get("/mappings", response_model=MappingListResponse)
async def list_product_mappings(stores: MappingStores = Depends(get_mapping_stores)):
    return MappingListResponse(mappings=await stores.product_courses.list())


@router.post("/mappings", response_model=SuccessResponse)
async def set_product_mapping(
    data: ProductCourseMappingCreate,
    stores: MappingStores = Depends(get_mapping_stores),
):
    return await _set_mapping(stores.product_courses, data.productId, data.courseId)


@router.delete("/mappings/{product_id}", response_model=SuccessResponse)
async def delete_product_mapping(product_id: str, stores: MappingStores = Depends(get_mapping_stores)):
    return SuccessResponse(persisted=await stores.product_courses.remove(product_id))


# Bundle -> component products


@router.get("/bundles", response_model=MappingListResponse)
async def list_bundle_components(stores: MappingStores = Depends(get_mapping_stores)):
    return MappingListResponse(mappings=await stores.bundle_components.list())


@router.post("/bundles", response_model=SuccessResponse)
async def set_bundle_components(
    data: BundleComponentsCreate,
    stores: MappingStores = Depends(get_mapping_stores),
):
    return await _set_mapping(stores.bundle_components, data.bundleProductId, data.componentProductIds)


@router.get("/bundles/{bundle_product_id}", response_model=BundleComponentsResponse)
async def get_bundle_components(bundle_product_id: str, stores: MappingStores = Depends(get_mapping_stores)):
    components = await stores.bundle_components.get(bundle_product_id)
    return BundleComponentsResponse(
        bundleProductId=normalize_product_id(bundle_product_id),
        components=components,
    )


@router.delete("/bundles/{bundle_product_id}", response_model=SuccessResponse)
async def delete_bundle_components(bundle_product_id: str, stores: MappingStores = Depends(get_mapping_stores)):
    return SuccessResponse(persisted=await stores.bundle_components.remove(bundle_product_id))


# Bundle name -> course


@router.get("/bundle-names", response_model=MappingListResponse)
async def list_bundle_names(stores: MappingStores = Depends(get_mapping_stores)):
    return MappingListResponse(mappings=await stores.bundle_names.list())


@router.get("/bundle-names/lookup", response_model=BundleNameLookupResponse)
async def lookup_bundle_name(
    name: str = Query(..., min_length=1),
    resolver: CourseResolver = Depends(get_course_resolver),
):
    course_id = await resolver.find_course_for_bundle_name(name)
    if course_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No course found for this bundle name")
    return BundleNameLookupResponse(bundleName=normalize_bundle_name(name), courseId=course_id)


@router.post("/bundle-names", response_model=SuccessResponse)
async def set_bundle_name(
    data: BundleNameMappingCreate,
    stores: MappingStores = Depends(get_mapping_stores),
):
    return await _set_mapping(stores.bundle_names, data.bundleName, data.courseId)


@router.delete("/bundle-names/{bundle_name}", response_model=SuccessResponse)
async def delete_bundle_name(bundle_name: str, stores: MappingStores = Depends(get_mapping_stores)):
    return SuccessResponse(persisted=await stores.bundle_names.remove(bundle_name))


@router.get("/learning-platform/status", response_model=ConnectionStatusResponse)
async def learning_platform_status(client: LearnWorldsClient = Depends(get_learnworlds_client)):
    return ConnectionStatusResponse(connected=await client.test_connection())
