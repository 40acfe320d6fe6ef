"""
Test Suite Configuration
"""
import csv
import itertools
from datetime import datetime, timedelta
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict, List

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from src.config import Settings
from src.database import connection
from src.database.models import Base, Sale
from src.ingestion.sales_loader import CSV_HEADER


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """File-backed SQLite URL; every connection sees the same database"""
    return f"sqlite+aiosqlite:///{tmp_path / 'sales.db'}"


@pytest.fixture
async def test_engine(database_url: str):
    """Create test database engine with the schema in place"""
    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def test_db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def initialized_db(database_url: str, test_engine):
    """Point the application's global engine at the test database"""
    await connection.init_database(database_url)
    yield
    await connection.close_database()


@pytest.fixture
def sale_row() -> Callable[..., Dict[str, str]]:
    """Build one CSV row (header -> text) with realistic defaults"""
    counter = itertools.count(1)

    def _make(**overrides: str) -> Dict[str, str]:
        n = next(counter)
        row = {
            "Customer ID": f"CUST-{n:05d}",
            "Customer Name": f"Customer {n}",
            "Phone Number": f"98765{n:05d}",
            "Gender": "Female",
            "Age": "34",
            "Customer Region": "North",
            "Customer Type": "Returning",
            "Product ID": f"PROD-{n:04d}",
            "Product Name": "Voltix Headphones",
            "Brand": "Voltix",
            "Product Category": "Electronics",
            "Tags": "wireless, gadgets",
            "Product Description": "Over-ear wireless headphones",
            "Quantity": "2",
            "Price per Unit": "49.99",
            "Discount Percentage": "10",
            "Total Amount": "99.98",
            "Final Amount": "89.98",
            "Date": "2023-06-15",
            "Payment Method": "Credit Card",
            "Order Status": "Completed",
            "Delivery Type": "Standard",
            "Store ID": "ST-001",
            "Store Location": "Springfield",
            "Salesperson ID": "EMP-0001",
            "Employee Name": "Sam Lee",
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def write_sales_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write rows to a CSV file with the production header"""

    def _write(rows: List[Dict[str, str]], name: str = "sales.csv", header: List[str] = CSV_HEADER) -> Path:
        path = tmp_path / name
        with path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=header, extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow({column: row.get(column, "") for column in header})
        return path

    return _write


@pytest.fixture
def sale_factory() -> Callable[..., Sale]:
    """Build ``Sale`` ORM objects with unique natural keys"""
    counter = itertools.count(1)

    def _make(**overrides) -> Sale:
        n = next(counter)
        values = dict(
            row_hash=f"hash-{n:06d}",
            customer_id=f"CUST-{n:05d}",
            customer_name=f"Customer {n}",
            phone=f"55501{n:05d}",
            gender="Male",
            age=25,
            region="East",
            customer_type="New",
            product_id=f"PROD-{n:04d}",
            product_name="Threadline Shirt",
            brand="Threadline",
            category="Clothing",
            tags=["cotton"],
            description="",
            quantity=1,
            price_per_unit=20.0,
            discount=0.0,
            total_amount=20.0,
            final_amount=20.0,
            date=datetime(2024, 1, 1) + timedelta(days=n),
            payment_method="Cash",
            order_status="Completed",
            delivery_type="Standard",
            store_id="ST-002",
            store_location="Shelbyville",
            salesperson_id="EMP-0002",
            employee_name="Alex Kim",
        )
        values.update(overrides)
        return Sale(**values)

    return _make
