"""Ingest contract helpers for the bulk importer."""

from __future__ import annotations

from .bulk_insert import (
    ColumnProperty,
    ImportContentType,
    ImportPayload,
    PropertyKind,
    parse_column_properties,
)

__all__ = [
    "ColumnProperty",
    "ImportContentType",
    "ImportPayload",
    "PropertyKind",
    "parse_column_properties",
]
