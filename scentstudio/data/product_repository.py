from __future__ import annotations

import sqlite3
from typing import List, Optional

from ..errors import CatalogConflict, InvalidProduct, ProductNotFound
from ..models.order_models import Product
from .database import read_scope, transaction


_PRODUCT_COLUMNS = """
    p.id,
    p.reference,
    p.version,
    p.name,
    p.brand,
    (SELECT COUNT(DISTINCT op.order_id) FROM order_products AS op WHERE op.product_id = p.id) AS order_count
"""


def find_latest_by_reference(connection: sqlite3.Connection, reference: str) -> Optional[Product]:
    row = connection.execute(
        f"""
        SELECT {_PRODUCT_COLUMNS}
        FROM products AS p
        WHERE p.reference = ?
        ORDER BY p.version DESC
        LIMIT 1
        """,
        (reference,),
    ).fetchone()
    if row is None:
        return None
    return _row_to_product(row)


def find_matching_version(
    connection: sqlite3.Connection,
    reference: str,
    name: str,
    brand: Optional[str],
) -> Optional[Product]:
    row = connection.execute(
        f"""
        SELECT {_PRODUCT_COLUMNS}
        FROM products AS p
        WHERE p.reference = ?
          AND p.name = ?
          AND p.brand IS ?
        ORDER BY p.version DESC
        LIMIT 1
        """,
        (reference, name, brand),
    ).fetchone()
    if row is None:
        return None
    return _row_to_product(row)


def insert_product(
    connection: sqlite3.Connection,
    reference: str,
    name: str,
    brand: Optional[str],
    *,
    version: int = 1,
) -> int:
    cursor = connection.execute(
        """
        INSERT INTO products (reference, version, name, brand)
        VALUES (?, ?, ?, ?)
        """,
        (reference, int(version), name, brand),
    )
    return int(cursor.lastrowid)


def overwrite_display_fields(
    connection: sqlite3.Connection,
    product_id: int,
    name: str,
    brand: Optional[str],
) -> None:
    connection.execute(
        "UPDATE products SET name = ?, brand = ? WHERE id = ?",
        (name, brand, int(product_id)),
    )


def list_products(search: Optional[str] = None) -> List[Product]:
    sql = [f"SELECT {_PRODUCT_COLUMNS} FROM products AS p"]
    params: List[object] = []
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        sql.append(
            """
            WHERE LOWER(p.name) LIKE ?
               OR LOWER(p.reference) LIKE ?
               OR LOWER(IFNULL(p.brand, '')) LIKE ?
            """
        )
        params.extend([pattern, pattern, pattern])
    sql.append("ORDER BY p.reference ASC, p.version ASC")

    with read_scope() as connection:
        rows = connection.execute("\n".join(sql), params).fetchall()
    return [_row_to_product(row) for row in rows]


def get_product_by_id(product_id: int) -> Optional[Product]:
    with read_scope() as connection:
        row = connection.execute(
            f"SELECT {_PRODUCT_COLUMNS} FROM products AS p WHERE p.id = ?",
            (int(product_id),),
        ).fetchone()
    if row is None:
        return None
    return _row_to_product(row)


def save_product(product: Product) -> Product:
    reference = product.reference.strip()
    name = product.name.strip()
    if not reference:
        raise InvalidProduct("Reference is required.")
    if not name:
        raise InvalidProduct("Name is required.")
    brand = (product.brand or "").strip() or None

    try:
        with transaction() as connection:
            if product.id is None:
                product_id = insert_product(connection, reference, name, brand, version=product.version)
            else:
                cursor = connection.execute(
                    """
                    UPDATE products
                    SET reference = ?,
                        name = ?,
                        brand = ?
                    WHERE id = ?
                    """,
                    (reference, name, brand, int(product.id)),
                )
                if cursor.rowcount == 0:
                    raise ProductNotFound(product.id)
                product_id = int(product.id)
    except sqlite3.IntegrityError as exc:
        raise CatalogConflict(reference, f"Reference '{reference}' already exists.") from exc

    saved = get_product_by_id(product_id)
    if saved is None:
        raise ProductNotFound(product_id)
    return saved


def delete_product(product_id: int) -> int:
    """Delete a catalog row and return how many orders referenced it."""
    with transaction() as connection:
        exists = connection.execute(
            "SELECT 1 FROM products WHERE id = ?", (int(product_id),)
        ).fetchone()
        if exists is None:
            raise ProductNotFound(product_id)

        linked = connection.execute(
            "SELECT COUNT(DISTINCT order_id) FROM order_products WHERE product_id = ?",
            (int(product_id),),
        ).fetchone()[0]
        connection.execute("DELETE FROM products WHERE id = ?", (int(product_id),))
    return int(linked or 0)


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        id=int(row["id"]),
        reference=row["reference"],
        name=row["name"],
        brand=row["brand"],
        version=int(row["version"] or 1),
        order_count=int(row["order_count"] or 0),
    )
