"""
Upload file parsers.
"""

from parsers.csv_parser import (
    parse_catalog_csv,
    ParsedCSV,
)

__all__ = [
    "parse_catalog_csv",
    "ParsedCSV",
]
