"""
Data Ingestion Module
"""
from .sales_loader import LoadResult, LoadStatus, SalesBatchWriter, SalesLoader, map_row, stream_csv_rows

__all__ = [
    "LoadResult",
    "LoadStatus",
    "SalesBatchWriter",
    "SalesLoader",
    "map_row",
    "stream_csv_rows",
]
