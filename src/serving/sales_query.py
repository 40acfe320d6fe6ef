"""
Sales Query Building

Turns validated list parameters into SQL in two explicit steps:

1. ``build_predicates`` produces a flat list of ``Predicate`` descriptors
   (fields, operator, value) for the parameters that were supplied.
2. ``compile_predicate`` translates each descriptor into a SQLAlchemy
   expression for the active dialect.

``fetch_sales_page`` runs the count and the page fetch against the same
filter set inside one read transaction.
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import and_, asc, desc, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from src.database.models import Sale

logger = structlog.get_logger(__name__)

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# =============================================================================
# PARAMETERS
# =============================================================================

class SortOrder(str, Enum):
    """Sort direction"""
    ASC = "asc"
    DESC = "desc"


# sortBy value -> column; anything else means no explicit ordering
SORT_COLUMNS = {
    "date": Sale.date,
    "quantity": Sale.quantity,
    "customerName": Sale.customer_name,
}


def parse_date_bound(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime bound into naive UTC.

    A bare date covers the whole day: start of day for lower bounds, last
    microsecond of the day for upper bounds.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()

    if _DATE_ONLY.match(text):
        day = date.fromisoformat(text)
        return datetime.combine(day, time.max if end_of_day else time.min)

    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class SalesQuery(BaseModel):
    """Validated parameters of a sales list request"""
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)
    search: Optional[str] = None
    sort_by: str = "date"
    sort_order: SortOrder = SortOrder.DESC
    region: List[str] = Field(default_factory=list)
    gender: List[str] = Field(default_factory=list)
    category: List[str] = Field(default_factory=list)
    payment_method: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("region", "gender", "category", "payment_method", "tags", mode="before")
    @classmethod
    def normalize_values(cls, v: Any) -> List[str]:
        """Accept a single value or a list; drop empty entries"""
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [item for item in v if item]

    @field_validator("search", mode="before")
    @classmethod
    def empty_search(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start(cls, v: Any) -> Any:
        return parse_date_bound(v) if isinstance(v, str) else v

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end(cls, v: Any) -> Any:
        return parse_date_bound(v, end_of_day=True) if isinstance(v, str) else v


# =============================================================================
# PREDICATES
# =============================================================================

class Operator(str, Enum):
    """Predicate operators"""
    ICONTAINS = "icontains"
    IN = "in"
    OVERLAPS = "overlaps"
    GTE = "gte"
    LTE = "lte"


@dataclass(frozen=True)
class Predicate:
    """
    One filter clause before translation to SQL.

    ``fields`` names ``Sale`` attributes; when several are given the clause
    matches if any of them matches.
    """
    fields: Tuple[str, ...]
    operator: Operator
    value: Any


def build_predicates(query: SalesQuery) -> List[Predicate]:
    """Assemble the filter descriptors for the parameters present in ``query``."""
    predicates: List[Predicate] = []

    if query.search:
        predicates.append(Predicate(("customer_name", "phone"), Operator.ICONTAINS, query.search))

    for field_name in ("region", "gender", "category", "payment_method"):
        values = getattr(query, field_name)
        if values:
            predicates.append(Predicate((field_name,), Operator.IN, tuple(values)))

    if query.tags:
        predicates.append(Predicate(("tags",), Operator.OVERLAPS, tuple(query.tags)))

    if query.min_age is not None:
        predicates.append(Predicate(("age",), Operator.GTE, query.min_age))
    if query.max_age is not None:
        predicates.append(Predicate(("age",), Operator.LTE, query.max_age))

    if query.start_date is not None:
        predicates.append(Predicate(("date",), Operator.GTE, query.start_date))
    if query.end_date is not None:
        predicates.append(Predicate(("date",), Operator.LTE, query.end_date))

    return predicates


def _tags_overlap(column, values: Sequence[str], dialect_name: str) -> ColumnElement:
    if dialect_name == "sqlite":
        # tags is a JSON list on SQLite
        elements = func.json_each(column).table_valued("value")
        return exists(select(1).select_from(elements).where(elements.c.value.in_(list(values))))
    return column.overlap(list(values))


def compile_predicate(predicate: Predicate, dialect_name: str) -> ColumnElement:
    """Translate a descriptor into a SQLAlchemy boolean expression."""
    clauses = []
    for field_name in predicate.fields:
        column = getattr(Sale, field_name)
        op = predicate.operator

        if op is Operator.ICONTAINS:
            clauses.append(column.icontains(predicate.value, autoescape=True))
        elif op is Operator.IN:
            clauses.append(column.in_(list(predicate.value)))
        elif op is Operator.OVERLAPS:
            clauses.append(_tags_overlap(column, predicate.value, dialect_name))
        elif op is Operator.GTE:
            clauses.append(column >= predicate.value)
        elif op is Operator.LTE:
            clauses.append(column <= predicate.value)
        else:
            raise ValueError(f"Unsupported operator: {op}")

    return clauses[0] if len(clauses) == 1 else or_(*clauses)


def build_order_by(sort_by: str, sort_order: SortOrder) -> list:
    """Ordering clauses; ``id`` breaks ties so pages never overlap."""
    column = SORT_COLUMNS.get(sort_by)
    if column is None:
        return []
    direction = asc if sort_order == SortOrder.ASC else desc
    return [direction(column), direction(Sale.id)]


# =============================================================================
# EXECUTION
# =============================================================================

@dataclass
class SalesPage:
    """A page of sales plus pagination metadata"""
    items: List[Sale]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


async def fetch_sales_page(session: AsyncSession, query: SalesQuery) -> SalesPage:
    """
    Count and fetch one page of sales for ``query``.

    Both statements run in the session's single transaction; on PostgreSQL
    the transaction is REPEATABLE READ so they share one snapshot.
    """
    dialect_name = session.bind.dialect.name
    if dialect_name == "postgresql":
        await session.connection(execution_options={"isolation_level": "REPEATABLE READ"})

    conditions = [compile_predicate(p, dialect_name) for p in build_predicates(query)]

    count_query = select(func.count(Sale.id))
    page_query = select(Sale)
    if conditions:
        count_query = count_query.where(and_(*conditions))
        page_query = page_query.where(and_(*conditions))

    total_result = await session.execute(count_query)
    total = total_result.scalar() or 0

    order_by = build_order_by(query.sort_by, query.sort_order)
    if order_by:
        page_query = page_query.order_by(*order_by)

    offset = (query.page - 1) * query.limit
    page_query = page_query.offset(offset).limit(query.limit)
    result = await session.execute(page_query)
    items = list(result.scalars().all())

    logger.debug(
        "Sales page fetched",
        total=total,
        page=query.page,
        limit=query.limit,
        filters=len(conditions),
    )
    return SalesPage(items=items, total=total, page=query.page, limit=query.limit)
