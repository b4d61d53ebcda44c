"""
Practice: SQL exercises, the practice database and answer grading.
"""

from src.practice.catalog import DEFAULT_ITEMS, ConceptCatalog, PracticeItem
from src.practice.query_runner import PracticeDatabase, QueryResult
from src.practice.result_compare import compare_rows

__all__ = [
    "DEFAULT_ITEMS",
    "ConceptCatalog",
    "PracticeDatabase",
    "PracticeItem",
    "QueryResult",
    "compare_rows",
]
