"""upload-gate — Validate retail dataset uploads before they reach the pipeline."""

__version__ = "0.2.0"

FILE_TYPES: tuple[str, ...] = ("transaction", "product_lookup", "causal_lookup")
SUPPORTED_EXTENSIONS: tuple[str, ...] = (".csv", ".xlsx", ".xls")
