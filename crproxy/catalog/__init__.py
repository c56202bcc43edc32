"""Image catalog for the landing page."""

from crproxy.catalog.catalog import CatalogService

__all__ = ["CatalogService"]
