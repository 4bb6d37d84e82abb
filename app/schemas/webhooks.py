from pydantic import BaseModel
from typing import List, Optional, Union


class CustomerPayload(BaseModel):
    id: Optional[Union[str, int]] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ProductCancellationPayload(BaseModel):
    """Single-product subscription cancellation sent by the subscription app"""
    customer: Optional[CustomerPayload] = None
    product_id: Optional[Union[str, int]] = None
    product_title: Optional[str] = ""


class LineItemResultResponse(BaseModel):
    product_id: str
    title: str = ""
    course_id: Optional[str] = None
    status: str
    detail: str = ""


class WebhookResponse(BaseModel):
    received: bool = True
    success: bool = True
    message: str = "OK"
    order_id: Optional[str] = None
    items: List[LineItemResultResponse] = []
