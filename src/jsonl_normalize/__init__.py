"""Normalize line-delimited JSON dumps for columnar warehouse ingestion."""

__version__ = "0.1.0"
