"""
Serving Module
"""
from .sales_query import SalesQuery, SalesPage, build_predicates, fetch_sales_page

__all__ = [
    "SalesQuery",
    "SalesPage",
    "build_predicates",
    "fetch_sales_page",
]
