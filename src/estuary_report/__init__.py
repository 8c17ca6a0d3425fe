"""estuary-report — Annual water-quality report tables and panels for the Swan and Canning estuaries."""

__version__ = "0.3.0"

NORMALIZED_COLUMNS: list[str] = [
    "estuary",
    "site",
    "zone",
    "date",
    "method",
    "variable",
    "value",
    "censored",
    "period",
]
