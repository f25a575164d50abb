"""
Catalog Module
==============

Card templates, tasks and vote events: read access for the engine and the
administrative writes.
"""

from warthug.modules.catalog.repository import CatalogRepository
from warthug.modules.catalog.service import CatalogService

__all__ = [
    "CatalogRepository",
    "CatalogService",
]
