"""
Database Models

A single wide ``sales`` table, one row per transaction line, loaded in bulk
by the seed command and read by the sales API. Customer, product,
transaction and fulfillment attributes are stored denormalized so the list
endpoint can filter and sort without joins.

``row_hash`` is the natural key: a fingerprint of the source CSV row used to
skip duplicates on insert.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# PostgreSQL stores tags as a native text array, SQLite (tests, local dev) as a JSON list
TagList = ARRAY(Text).with_variant(JSON(), "sqlite")


class Sale(Base):
    """
    Sales Fact Table

    Grain: one line of a retail transaction.
    Numeric columns are nullable/NaN-tolerant because the loader coerces
    malformed source values instead of rejecting the row.
    Source text columns are unbounded so no value length can fail an insert.
    """
    __tablename__ = "sales"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    row_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # Customer
    customer_id: Mapped[Optional[str]] = mapped_column(Text)
    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    phone: Mapped[Optional[str]] = mapped_column(Text)
    gender: Mapped[Optional[str]] = mapped_column(Text)
    age: Mapped[Optional[int]] = mapped_column(Integer)
    region: Mapped[Optional[str]] = mapped_column(Text)
    customer_type: Mapped[Optional[str]] = mapped_column(Text)

    # Product
    product_id: Mapped[Optional[str]] = mapped_column(Text)
    product_name: Mapped[Optional[str]] = mapped_column(Text)
    brand: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[List[str]] = mapped_column(TagList, nullable=False, default=list)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Transaction
    quantity: Mapped[Optional[int]] = mapped_column(Integer)
    price_per_unit: Mapped[Optional[float]] = mapped_column(Float)
    discount: Mapped[Optional[float]] = mapped_column(Float)
    total_amount: Mapped[Optional[float]] = mapped_column(Float)
    final_amount: Mapped[Optional[float]] = mapped_column(Float)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(Text)
    order_status: Mapped[Optional[str]] = mapped_column(Text)
    delivery_type: Mapped[Optional[str]] = mapped_column(Text)

    # Fulfillment
    store_id: Mapped[Optional[str]] = mapped_column(Text)
    store_location: Mapped[Optional[str]] = mapped_column(Text)
    salesperson_id: Mapped[Optional[str]] = mapped_column(Text)
    employee_name: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_sales_date", "date"),
        Index("ix_sales_customer_name", "customer_name"),
        Index("ix_sales_quantity", "quantity"),
        Index("ix_sales_region", "region"),
        Index("ix_sales_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Sale(id={self.id}, customer={self.customer_name}, date={self.date})>"
