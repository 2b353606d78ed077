# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

Source documents are modelled as one record type per document kind, with
every field always present (empty or None where not applicable) and a
``kind`` literal naming the document kind.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel

# Stored in place of a reference-product code when the product has none
# (it is either the reference product itself or has no generic).
NO_REFERENCE_PRODUCT = "reference-or-no-generic"

# Placeholder for enrichment fields that the source could not resolve.
NOT_AVAILABLE = "N/A"


class DocumentKind(str, Enum):
    """Document kind, with its canonical filename prefix and target layout."""

    SPC = "RCP"
    LEAFLET = "Notice"
    EU = "RCP_Notice_EU"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]

    @property
    def subdir(self) -> tuple[str, ...]:
        """Path of the target directory relative to the batch root."""
        return _SUBDIRS[self]

    @classmethod
    def from_prefix(cls, prefix: str) -> DocumentKind | None:
        for kind, value in _PREFIXES.items():
            if value == prefix:
                return kind
        return None


_PREFIXES: dict[DocumentKind, str] = {
    DocumentKind.SPC: "R",
    DocumentKind.LEAFLET: "N",
    DocumentKind.EU: "E",
}

_SUBDIRS: dict[DocumentKind, tuple[str, ...]] = {
    DocumentKind.SPC: ("FR", "RCP"),
    DocumentKind.LEAFLET: ("FR", "Notices"),
    DocumentKind.EU: ("EU", "RCP_Notices"),
}

DECENTRALIZED_TYPES: tuple[str, ...] = (DocumentKind.SPC.value, DocumentKind.LEAFLET.value)
CENTRALIZED_TYPES: tuple[str, ...] = (DocumentKind.EU.value,)


class DomesticDocument(BaseModel):
    """A domestic SPC or leaflet row returned by the source."""

    kind: Literal["RCP", "Notice"]
    product_code: str
    product_name: str = ""
    authorization_label: str = ""
    classification_code: str = ""
    classification_label: str = ""
    reference_product_code: str | None = None
    doc_id: int | None = None
    source_name: str

    @property
    def document_kind(self) -> DocumentKind:
        return DocumentKind(self.kind)

    @property
    def reference_product(self) -> str:
        return self.reference_product_code or NO_REFERENCE_PRODUCT


class EuropeanDocument(BaseModel):
    """A centrally authorised product row from the monthly CSV, enriched from the source."""

    kind: Literal["RCP_Notice_EU"] = "RCP_Notice_EU"
    product_code: str
    product_number: str = ""
    url: str = ""
    classification_code: str = ""
    classification_label: str = ""
    product_name: str = ""
    reference_product: str = NO_REFERENCE_PRODUCT

    @property
    def document_kind(self) -> DocumentKind:
        return DocumentKind.EU


class ProductInfo(BaseModel):
    """Enrichment returned by the source for one product code."""

    classification_code: str = NOT_AVAILABLE
    classification_label: str = NOT_AVAILABLE
    product_name: str = NOT_AVAILABLE
    reference_product: str = NO_REFERENCE_PRODUCT
