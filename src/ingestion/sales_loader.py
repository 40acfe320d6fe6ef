"""
Sales CSV Loader

Streams a sales export into the ``sales`` table:
- Chunked CSV reads with Polars (all columns as text)
- Lenient per-field coercion (a malformed value never rejects a row)
- Fixed-size batches written with duplicate-skipping bulk inserts
- Bounded retry with a fresh database connection per attempt

Rows are pulled from the reader only after the previous batch has been
written, so at most one batch is in flight at any time.
"""

import asyncio
import hashlib
import json
import math
import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Protocol, Union

import pandas as pd
import polars as pl
import structlog
from pydantic import BaseModel
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_fixed

from src.database.connection import create_engine
from src.database.models import Sale

logger = structlog.get_logger(__name__)


# =============================================================================
# SOURCE FORMAT
# =============================================================================

TEXT_COLUMNS: Dict[str, str] = {
    "Customer ID": "customer_id",
    "Customer Name": "customer_name",
    "Phone Number": "phone",
    "Gender": "gender",
    "Customer Region": "region",
    "Customer Type": "customer_type",
    "Product ID": "product_id",
    "Product Name": "product_name",
    "Brand": "brand",
    "Product Category": "category",
    "Product Description": "description",
    "Payment Method": "payment_method",
    "Order Status": "order_status",
    "Delivery Type": "delivery_type",
    "Store ID": "store_id",
    "Store Location": "store_location",
    "Salesperson ID": "salesperson_id",
    "Employee Name": "employee_name",
}

INTEGER_COLUMNS: Dict[str, str] = {
    "Age": "age",
    "Quantity": "quantity",
}

DECIMAL_COLUMNS: Dict[str, str] = {
    "Price per Unit": "price_per_unit",
    "Discount Percentage": "discount",
    "Total Amount": "total_amount",
    "Final Amount": "final_amount",
}

TAGS_COLUMN = "Tags"
DATE_COLUMN = "Date"

CSV_HEADER: List[str] = [
    "Customer ID", "Customer Name", "Phone Number", "Gender", "Age",
    "Customer Region", "Customer Type", "Product ID", "Product Name", "Brand",
    "Product Category", "Tags", "Product Description", "Quantity",
    "Price per Unit", "Discount Percentage", "Total Amount", "Final Amount",
    "Date", "Payment Method", "Order Status", "Delivery Type", "Store ID",
    "Store Location", "Salesperson ID", "Employee Name",
]

_INT_PREFIX = re.compile(r"^[+-]?\d+")
_DECIMAL_PREFIX = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


# =============================================================================
# FIELD COERCION
# =============================================================================

def parse_int(value: Optional[str]) -> Optional[int]:
    """Leading-integer parse: "42" -> 42, "30.9" -> 30, "abc" -> None."""
    if not value:
        return None
    match = _INT_PREFIX.match(value.strip())
    return int(match.group()) if match else None


def parse_decimal(value: Optional[str]) -> float:
    """Leading-number parse: "19.99" -> 19.99, "10%" -> 10.0, "n/a" -> NaN."""
    if not value:
        return math.nan
    match = _DECIMAL_PREFIX.match(value.strip())
    return float(match.group()) if match else math.nan


def parse_tags(value: Optional[str]) -> List[str]:
    """Comma separated tags, each segment trimmed; "" -> []."""
    if not value:
        return []
    return [tag.strip() for tag in value.split(",")]


def parse_date(value: Optional[str], fallback: datetime) -> datetime:
    """
    Parse a free-form date string into a naive UTC datetime.

    Empty or unparseable input returns ``fallback`` so the row is kept.
    """
    if not value or not value.strip():
        return fallback

    parsed = pd.to_datetime(value.strip(), errors="coerce")
    if parsed is pd.NaT or pd.isna(parsed):
        return fallback

    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert("UTC").tz_localize(None)
    return parsed.to_pydatetime()


def row_fingerprint(row: Dict[str, str]) -> str:
    """SHA-256 over the trimmed source row; used as the natural key."""
    payload = json.dumps(list(row.items()), ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def map_row(row: Dict[str, str], ingested_at: datetime) -> Dict[str, Any]:
    """
    Map one CSV row (header -> text) onto ``Sale`` column values.

    Args:
        row: Trimmed source values keyed by header name
        ingested_at: Timestamp substituted for a missing/invalid date

    Returns:
        Dict ready for a bulk insert into ``sales``
    """
    record: Dict[str, Any] = {
        field_name: row.get(header, "") for header, field_name in TEXT_COLUMNS.items()
    }
    for header, field_name in INTEGER_COLUMNS.items():
        record[field_name] = parse_int(row.get(header))
    for header, field_name in DECIMAL_COLUMNS.items():
        record[field_name] = parse_decimal(row.get(header))

    record["tags"] = parse_tags(row.get(TAGS_COLUMN))
    record["date"] = parse_date(row.get(DATE_COLUMN), ingested_at)
    record["row_hash"] = row_fingerprint(row)
    return record


# =============================================================================
# STREAMING READER
# =============================================================================

def _scan(path: Path) -> pl.LazyFrame:
    # invalid UTF-8 bytes are replaced, never fatal
    return pl.scan_csv(
        path,
        has_header=True,
        infer_schema=False,
        encoding="utf8-lossy",
        raise_if_empty=False,
        truncate_ragged_lines=True,
    )


def _read_chunk(frame: pl.LazyFrame, offset: int, length: int) -> pl.DataFrame:
    return frame.slice(offset, length).collect()


async def stream_csv_rows(
    file_path: Union[str, Path],
    chunk_size: int = 1000,
) -> AsyncIterator[Dict[str, str]]:
    """
    Yield CSV rows one at a time as ``{header: trimmed text}``.

    The file is read one chunk at a time in a worker thread; the next chunk
    is only requested once the consumer has pulled every row of the
    current one.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")

    frame = await asyncio.to_thread(_scan, Path(file_path))
    offset = 0

    while True:
        df = await asyncio.to_thread(_read_chunk, frame, offset, chunk_size)
        if df.height == 0:
            break

        headers = [column.strip() for column in df.columns]
        for values in df.iter_rows():
            yield {
                header: value.strip() if value is not None else ""
                for header, value in zip(headers, values)
            }

        if df.height < chunk_size:
            break
        offset += df.height


# =============================================================================
# WRITER
# =============================================================================

class BatchWriter(Protocol):
    """Anything that can persist a batch of mapped records"""

    async def write(self, batch: List[Dict[str, Any]]) -> int:
        ...


def _dialect_insert(dialect_name: str):
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise ValueError(f"Unsupported database dialect for bulk upsert: {dialect_name}")


class SalesBatchWriter:
    """
    Bulk writer for the ``sales`` table.

    Each batch is one multi-row ``INSERT ... ON CONFLICT (row_hash) DO NOTHING``
    in its own transaction. A failed attempt drops the engine and builds a
    new one before the next attempt.

    Example:
        async with SalesBatchWriter() as writer:
            inserted = await writer.write(records)
    """

    def __init__(
        self,
        url: Optional[str] = None,
        max_attempts: int = 3,
        retry_delay_seconds: float = 2.0,
        engine_factory: Callable[[Optional[str]], AsyncEngine] = create_engine,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.url = url
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._engine_factory = engine_factory
        self._engine: Optional[AsyncEngine] = None

    def _get_engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = self._engine_factory(self.url)
        return self._engine

    async def _reconnect(self) -> None:
        await self.close()
        self._get_engine()
        logger.info("Database connection recreated")

    async def _insert(self, batch: List[Dict[str, Any]]) -> int:
        engine = self._get_engine()
        insert = _dialect_insert(engine.dialect.name)
        stmt = insert(Sale).values(batch).on_conflict_do_nothing(index_elements=["row_hash"])

        async with engine.begin() as conn:
            result = await conn.execute(stmt)
            inserted = result.rowcount
        return max(inserted or 0, 0)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        logger.warning(
            "Batch insert failed, retrying",
            attempt=retry_state.attempt_number,
            remaining=self.max_attempts - retry_state.attempt_number,
            delay_seconds=retry_state.next_action.sleep,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def write(self, batch: List[Dict[str, Any]]) -> int:
        """
        Insert a batch; returns the number of rows actually added.

        Up to ``max_attempts`` attempts with a fixed delay; every attempt
        after the first runs on a freshly created engine. The last error is
        re-raised unchanged.
        """
        if not batch:
            return 0

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.retry_delay_seconds),
            before_sleep=self._log_retry,
            reraise=True,
        )
        inserted = 0
        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        await self._reconnect()
                    inserted = await self._insert(batch)
        except Exception as e:
            logger.error(
                "Batch insert failed, retries exhausted",
                attempts=self.max_attempts,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        return inserted

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def __aenter__(self) -> "SalesBatchWriter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


# =============================================================================
# LOADER
# =============================================================================

class LoadStatus(str, Enum):
    """Load run status"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class LoadResult(BaseModel):
    """Result of a CSV load run"""
    file_path: str
    status: LoadStatus
    rows_read: int = 0
    rows_inserted: int = 0
    batches_written: int = 0
    error_message: Optional[str] = None
    duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None


class SalesLoader:
    """
    CSV to ``sales`` loader.

    Pulls one row at a time from the CSV stream and hands every full batch
    to the writer, awaiting it (retries included) before pulling the next
    row. A write that still fails after its retries aborts the run.

    Example:
        async with SalesBatchWriter() as writer:
            result = await SalesLoader(writer).load("data/sales.csv")
    """

    def __init__(
        self,
        writer: BatchWriter,
        batch_size: int = 100,
        read_chunk_size: int = 1000,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.writer = writer
        self.batch_size = batch_size
        self.read_chunk_size = read_chunk_size

    async def _flush(self, batch: List[Dict[str, Any]], result: LoadResult) -> None:
        inserted = await self.writer.write(batch)
        result.rows_inserted += inserted
        result.batches_written += 1
        logger.info(
            f"Inserted {result.rows_read} records...",
            records_processed=result.rows_read,
            records_inserted=result.rows_inserted,
            batch=result.batches_written,
        )

    def _finish(self, result: LoadResult, status: LoadStatus) -> None:
        result.status = status
        result.completed_at = datetime.utcnow()
        result.duration_seconds = (result.completed_at - result.started_at).total_seconds()

    async def load(
        self,
        file_path: Union[str, Path],
        ingested_at: Optional[datetime] = None,
    ) -> LoadResult:
        """
        Load a sales CSV file.

        Args:
            file_path: CSV file with a header row
            ingested_at: Fallback timestamp for rows without a usable date,
                defaults to the start of the run

        Returns:
            LoadResult: ``completed``, or ``skipped`` if the file is missing

        Raises:
            Exception: the last write error once retries are exhausted, or
                any reader error
        """
        path = Path(file_path)
        started_at = datetime.utcnow()
        ingested_at = ingested_at or started_at

        result = LoadResult(
            file_path=str(path),
            status=LoadStatus.RUNNING,
            started_at=started_at,
        )

        if not path.exists():
            logger.error("File not found", file=str(path))
            result.error_message = f"File not found: {path}"
            self._finish(result, LoadStatus.SKIPPED)
            return result

        logger.info("Starting sales load", file=str(path), batch_size=self.batch_size)

        batch: List[Dict[str, Any]] = []
        try:
            async for row in stream_csv_rows(path, self.read_chunk_size):
                batch.append(map_row(row, ingested_at))
                result.rows_read += 1

                if len(batch) >= self.batch_size:
                    await self._flush(batch, result)
                    batch = []

            if batch:
                await self._flush(batch, result)
        except Exception as e:
            result.error_message = str(e)
            self._finish(result, LoadStatus.FAILED)
            logger.error(
                "Sales load aborted",
                file=str(path),
                records_processed=result.rows_read,
                records_inserted=result.rows_inserted,
                error=str(e),
            )
            raise

        self._finish(result, LoadStatus.COMPLETED)
        logger.info(
            "Sales load completed",
            records_processed=result.rows_read,
            records_inserted=result.rows_inserted,
            batches=result.batches_written,
            duration_seconds=result.duration_seconds,
        )
        return result
