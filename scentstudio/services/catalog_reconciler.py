"""Map order line items onto canonical catalog rows.

Each line item is looked up by its exact reference. What happens when the
reference exists with a different name or brand is decided by a
``CatalogPolicy``:

* ``OVERWRITE`` rewrites the shared row, so every order that references it
  shows the newest name and brand.
* ``VERSION`` leaves the existing row alone and adds the next version of the
  reference for the new display fields.
* ``REJECT`` raises ``CatalogConflict``.

All functions run on the caller's connection so they share its transaction.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Callable, Dict, Iterable, List, Optional

from ..data import order_repository, product_repository
from ..errors import CatalogConflict, InvalidLineItem
from ..models.order_models import CatalogPolicy, Product, ProductLine

logger = logging.getLogger(__name__)

ProductResolver = Callable[[sqlite3.Connection, ProductLine, Product], int]


def validate_line_items(lines: Iterable[ProductLine]) -> List[ProductLine]:
    cleaned: List[ProductLine] = []
    for index, line in enumerate(lines):
        name = (line.name or "").strip()
        reference = (line.reference or "").strip()
        if not name:
            raise InvalidLineItem(index, "name")
        if not reference:
            raise InvalidLineItem(index, "reference")
        brand = (line.brand or "").strip() or None
        cleaned.append(ProductLine(name=name, reference=reference, brand=brand))
    return cleaned


def reconcile(
    connection: sqlite3.Connection,
    order_id: int,
    lines: Iterable[ProductLine],
    policy: CatalogPolicy = CatalogPolicy.OVERWRITE,
    *,
    invoice_number: str = "",
) -> List[int]:
    product_ids = resolve_products(
        connection,
        lines,
        policy,
        order_id=order_id,
        invoice_number=invoice_number,
    )
    order_repository.insert_links(connection, order_id, product_ids)
    return product_ids


def resolve_products(
    connection: sqlite3.Connection,
    lines: Iterable[ProductLine],
    policy: CatalogPolicy = CatalogPolicy.OVERWRITE,
    *,
    order_id: Optional[int] = None,
    invoice_number: str = "",
) -> List[int]:
    cleaned = validate_line_items(lines)
    return [
        resolve_product(connection, line, policy, order_id=order_id, invoice_number=invoice_number)
        for line in cleaned
    ]


def resolve_product(
    connection: sqlite3.Connection,
    line: ProductLine,
    policy: CatalogPolicy = CatalogPolicy.OVERWRITE,
    *,
    order_id: Optional[int] = None,
    invoice_number: str = "",
) -> int:
    existing = product_repository.find_latest_by_reference(connection, line.reference)
    if existing is None:
        product_id = product_repository.insert_product(connection, line.reference, line.name, line.brand)
        logger.debug("Created catalog product %s (%s) as id %s", line.reference, line.name, product_id)
        return product_id

    if existing.name == line.name and existing.brand == line.brand:
        return int(existing.id)

    resolver = _RESOLVERS[CatalogPolicy(policy)]
    product_id = resolver(connection, line, existing)
    if policy == CatalogPolicy.OVERWRITE:
        order_repository.log_order_event(
            connection,
            order_id,
            invoice_number,
            "CatalogOverwrite",
            f"{line.reference}: '{_describe(existing.name, existing.brand)}' "
            f"-> '{_describe(line.name, line.brand)}'",
        )
    return product_id


def _overwrite(connection: sqlite3.Connection, line: ProductLine, existing: Product) -> int:
    product_repository.overwrite_display_fields(connection, int(existing.id), line.name, line.brand)
    logger.info(
        "Catalog product %s renamed from %r to %r",
        line.reference,
        _describe(existing.name, existing.brand),
        _describe(line.name, line.brand),
    )
    return int(existing.id)


def _add_version(connection: sqlite3.Connection, line: ProductLine, existing: Product) -> int:
    earlier = product_repository.find_matching_version(connection, line.reference, line.name, line.brand)
    if earlier is not None:
        return int(earlier.id)

    version = existing.version + 1
    product_id = product_repository.insert_product(
        connection,
        line.reference,
        line.name,
        line.brand,
        version=version,
    )
    logger.info("Catalog product %s stored as version %s", line.reference, version)
    return product_id


def _reject(connection: sqlite3.Connection, line: ProductLine, existing: Product) -> int:
    raise CatalogConflict(
        line.reference,
        f"Reference '{line.reference}' is already cataloged as "
        f"'{_describe(existing.name, existing.brand)}'.",
    )


_RESOLVERS: Dict[CatalogPolicy, ProductResolver] = {
    CatalogPolicy.OVERWRITE: _overwrite,
    CatalogPolicy.VERSION: _add_version,
    CatalogPolicy.REJECT: _reject,
}


def _describe(name: str, brand: Optional[str]) -> str:
    return f"{name} / {brand}" if brand else name
