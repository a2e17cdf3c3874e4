"""Video catalog connectors.

Supported catalog: YouTube Data API v3 (channels are paged through their
uploads playlist).
"""

from feeddeck.connectors.base import (
    BaseCatalog,
    CatalogItem,
    CatalogPage,
    SearchResult,
    SourceKind,
)
from feeddeck.connectors.youtube import YouTubeCatalog, best_thumbnail

__all__ = [
    "BaseCatalog",
    "CatalogItem",
    "CatalogPage",
    "SearchResult",
    "SourceKind",
    "YouTubeCatalog",
    "best_thumbnail",
]
