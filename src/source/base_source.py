# src/source/base_source.py — v1
"""Abstract source query interface.

The relational source is read-only; each pipeline consumes an ordered list
of documents (or a per-product lookup) through this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rcpsync.core.models import DomesticDocument, ProductInfo


class DocumentSource(ABC):
    """Read-only access to product and document metadata."""

    @abstractmethod
    async def list_spc(self) -> list[DomesticDocument]:
        """Active products with a domestic SPC document, in source order."""

    @abstractmethod
    async def list_leaflets(self) -> list[DomesticDocument]:
        """Active products with a domestic leaflet document, in source order."""

    @abstractmethod
    async def lookup_product(self, product_code: str) -> ProductInfo | None:
        """Classification, name and reference product for one product code."""

    async def close(self) -> None:
        """Release connections (no-op by default)."""
