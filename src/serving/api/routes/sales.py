"""
Sales API Endpoints

Read-only, paginated listing of sales records with search, filters and
sorting.
"""

import math
from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from src.config import get_settings
from src.database.connection import get_db
from src.serving.sales_query import SalesQuery, fetch_sales_page

settings = get_settings()
logger = structlog.get_logger(__name__)
router = APIRouter()


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class SaleOut(BaseModel):
    """A sales record as returned to the dashboard"""
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    region: Optional[str] = None
    customer_type: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = []
    description: str = ""
    quantity: Optional[int] = None
    price_per_unit: Optional[float] = None
    discount: Optional[float] = None
    total_amount: Optional[float] = None
    final_amount: Optional[float] = None
    date: datetime
    payment_method: Optional[str] = None
    order_status: Optional[str] = None
    delivery_type: Optional[str] = None
    store_id: Optional[str] = None
    store_location: Optional[str] = None
    salesperson_id: Optional[str] = None
    employee_name: Optional[str] = None

    @field_validator("price_per_unit", "discount", "total_amount", "final_amount", mode="before")
    @classmethod
    def nan_to_null(cls, v):
        # JSON has no NaN; malformed source amounts go out as null
        if isinstance(v, float) and math.isnan(v):
            return None
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def null_tags(cls, v):
        return v or []


class PageMeta(BaseModel):
    """Pagination metadata"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    page: int
    limit: int
    total_pages: int


class SalesListResponse(BaseModel):
    """Paginated sales list"""
    data: List[SaleOut]
    meta: PageMeta


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=SalesListResponse)
async def list_sales(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.api.default_page_limit, ge=1),
    search: Optional[str] = None,
    sort_by: str = Query("date", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    region: Optional[List[str]] = Query(None),
    gender: Optional[List[str]] = Query(None),
    category: Optional[List[str]] = Query(None),
    payment_method: Optional[List[str]] = Query(None, alias="paymentMethod"),
    tags: Optional[List[str]] = Query(None),
    min_age: Optional[int] = Query(None, alias="minAge"),
    max_age: Optional[int] = Query(None, alias="maxAge"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
):
    """
    List sales with pagination, search, filtering and sorting.

    - ``search`` matches customer name or phone (case-insensitive)
    - ``region``, ``gender``, ``category``, ``paymentMethod``, ``tags`` repeat for OR
    - ``minAge``/``maxAge`` and ``startDate``/``endDate`` are inclusive
    - ``sortBy`` is one of date, quantity, customerName
    """
    try:
        query = SalesQuery(
            page=page,
            limit=limit,
            search=search,
            sort_by=sort_by,
            sort_order=sort_order,
            region=region,
            gender=gender,
            category=category,
            payment_method=payment_method,
            tags=tags,
            min_age=min_age,
            max_age=max_age,
            start_date=start_date,
            end_date=end_date,
        )
    except ValidationError as e:
        logger.warning("Rejected sales query", errors=e.errors(include_url=False, include_context=False))
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    try:
        async with get_db() as db:
            result = await fetch_sales_page(db, query)
    except Exception:
        logger.exception("Error fetching sales", page=page, limit=limit)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    return SalesListResponse(
        data=[SaleOut.model_validate(sale) for sale in result.items],
        meta=PageMeta(
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        ),
    )
