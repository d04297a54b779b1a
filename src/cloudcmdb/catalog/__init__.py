"""Builtin model catalog and its YAML loader."""

from cloudcmdb.catalog.loader import (
    BUILTIN_CATALOG,
    Catalog,
    CatalogError,
    CatalogLoader,
    load_catalog,
)

__all__ = [
    "BUILTIN_CATALOG",
    "Catalog",
    "CatalogError",
    "CatalogLoader",
    "load_catalog",
]
