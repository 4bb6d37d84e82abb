from pydantic import BaseModel
from typing import Any, Dict, List, Optional, Union


Identifier = Union[str, int]


class ProductCourseMappingCreate(BaseModel):
    # Required-ness is checked by the store so the client gets a 400, not a 422
    productId: Optional[Identifier] = None
    courseId: Optional[Identifier] = None


class BundleComponentsCreate(BaseModel):
    bundleProductId: Optional[Identifier] = None
    componentProductIds: Optional[List[Identifier]] = None


class BundleNameMappingCreate(BaseModel):
    bundleName: Optional[str] = None
    courseId: Optional[Identifier] = None


class MappingListResponse(BaseModel):
    success: bool = True
    mappings: Dict[str, Any]


class BundleComponentsResponse(BaseModel):
    success: bool = True
    bundleProductId: str
    components: Optional[List[str]] = None


class BundleNameLookupResponse(BaseModel):
    success: bool = True
    bundleName: str
    courseId: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True
    persisted: bool = True


class ConnectionStatusResponse(BaseModel):
    success: bool = True
    connected: bool
