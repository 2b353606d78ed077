# src/source/sql_source.py — v1
"""SQLAlchemy implementation of the document source.

Queries run on a synchronous engine inside a worker thread so that the
event loop keeps serving other tasks while the source database answers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from rcpsync.core.models import (
    NO_REFERENCE_PRODUCT,
    DocumentKind,
    DomesticDocument,
    ProductInfo,
)
from rcpsync.source.base_source import DocumentSource

logger = logging.getLogger(__name__)

_DOCUMENTS_QUERY = text(
    """
    SELECT v.code_cis,
           v.nom_vu,
           v.dbo_autorisation_lib_abr,
           v.dbo_classe_atc_lib_abr,
           v.dbo_classe_atc_lib_court,
           v.code_vuprinceps,
           mh.doc_id,
           mh.hname
    FROM vuutil v
    INNER JOIN mocatordocument_html mh ON v.code_vu = mh.spec_id
    WHERE v.dbo_statut_speci_lib_abr = 'Actif'
      AND mh.hname LIKE :prefix
    ORDER BY mh.doc_id
    """
)

_PRODUCT_QUERY = text(
    """
    SELECT v.dbo_classe_atc_lib_abr,
           v.dbo_classe_atc_lib_court,
           v.nom_vu,
           v.code_vuprinceps
    FROM vuutil v
    WHERE v.code_cis = :code
    ORDER BY v.dbo_classe_atc_lib_abr
    """
)


class SqlDocumentSource(DocumentSource):
    """Document source backed by any SQLAlchemy-supported database."""

    def __init__(self, url: str | None = None, engine: Engine | None = None) -> None:
        if engine is None:
            if not url:
                raise ValueError("SqlDocumentSource needs a database URL or an engine")
            engine = create_engine(url, pool_pre_ping=True)
        self._engine = engine

    async def list_spc(self) -> list[DomesticDocument]:
        return await asyncio.to_thread(self._fetch_documents, DocumentKind.SPC)

    async def list_leaflets(self) -> list[DomesticDocument]:
        return await asyncio.to_thread(self._fetch_documents, DocumentKind.LEAFLET)

    async def lookup_product(self, product_code: str) -> ProductInfo | None:
        return await asyncio.to_thread(self._fetch_product, product_code)

    async def close(self) -> None:
        self._engine.dispose()

    def _fetch_documents(self, kind: DocumentKind) -> list[DomesticDocument]:
        with self._engine.connect() as conn:
            rows = conn.execute(_DOCUMENTS_QUERY, {"prefix": f"{kind.prefix}%"}).mappings().all()
        documents = [_to_document(kind, row) for row in rows]
        logger.info("Source returned %d %s documents", len(documents), kind.value)
        return documents

    def _fetch_product(self, product_code: str) -> ProductInfo | None:
        with self._engine.connect() as conn:
            row = conn.execute(_PRODUCT_QUERY, {"code": product_code}).mappings().first()
        if row is None:
            return None
        return ProductInfo(
            classification_code=str(row["dbo_classe_atc_lib_abr"] or ""),
            classification_label=row["dbo_classe_atc_lib_court"] or "",
            product_name=row["nom_vu"] or "",
            reference_product=_text_or_none(row["code_vuprinceps"]) or NO_REFERENCE_PRODUCT,
        )


def _to_document(kind: DocumentKind, row: Any) -> DomesticDocument:
    return DomesticDocument(
        kind=kind.value,
        product_code=str(row["code_cis"]),
        product_name=row["nom_vu"] or "",
        authorization_label=row["dbo_autorisation_lib_abr"] or "",
        classification_code=row["dbo_classe_atc_lib_abr"] or "",
        classification_label=row["dbo_classe_atc_lib_court"] or "",
        reference_product_code=_text_or_none(row["code_vuprinceps"]),
        doc_id=row["doc_id"],
        source_name=row["hname"],
    )


def _text_or_none(value: Any) -> str | None:
    return None if value is None else str(value)
