"""Repository layer for catalog persistence."""

from src.repositories.catalog_repo import CatalogRepository

__all__ = ["CatalogRepository"]
