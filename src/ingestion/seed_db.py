"""
Database Seeding

Loads the sales CSV export into the database.

Usage:
    python -m src.ingestion.seed_db
    sales-seed
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import structlog

from src.config import get_settings
from src.config.logging import configure_logging
from src.database.connection import create_engine, create_schema
from src.ingestion.sales_loader import LoadResult, SalesBatchWriter, SalesLoader

logger = structlog.get_logger(__name__)
settings = get_settings()

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def resolve_csv_path(csv_path: Optional[str] = None) -> Path:
    """Resolve the configured CSV path; relative paths are taken from the project root."""
    path = Path(csv_path or settings.ingestion.csv_path)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


async def seed_sales(csv_path: Path, url: Optional[str] = None) -> LoadResult:
    """Ensure the schema exists, then stream ``csv_path`` into the sales table."""
    engine = create_engine(url)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()

    async with SalesBatchWriter(
        url=url,
        max_attempts=settings.ingestion.max_attempts,
        retry_delay_seconds=settings.ingestion.retry_delay_seconds,
    ) as writer:
        loader = SalesLoader(
            writer,
            batch_size=settings.ingestion.batch_size,
            read_chunk_size=settings.ingestion.read_chunk_size,
        )
        return await loader.load(csv_path)


async def main() -> Optional[LoadResult]:
    csv_path = resolve_csv_path()
    logger.info("Starting database seeding with streaming...", file=str(csv_path))

    if not csv_path.exists():
        logger.error("File not found", file=str(csv_path))
        return None

    result = await seed_sales(csv_path)
    logger.info(
        "Seeding completed successfully.",
        records_processed=result.rows_read,
        records_inserted=result.rows_inserted,
    )
    return result


def run() -> None:
    """Console entry point: exit 0 on success or missing file, 1 on failure."""
    configure_logging()
    try:
        asyncio.run(main())
    except Exception:
        logger.exception("Seeding failed")
        sys.exit(1)


if __name__ == "__main__":
    run()
