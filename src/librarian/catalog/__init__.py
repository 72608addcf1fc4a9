"""Catalog module: users, books and borrowing history."""

from .manager import CatalogManager

__all__ = ["CatalogManager"]
