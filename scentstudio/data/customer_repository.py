from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import List, Optional

from ..models.order_models import Customer, CustomerSummary, from_cents
from .database import read_scope


_DATE_FORMAT = "%Y-%m-%d"


def find_customer_by_name(connection: sqlite3.Connection, full_name: str) -> Optional[Customer]:
    row = connection.execute(
        """
        SELECT id, full_name, address, email, phone
        FROM customers
        WHERE full_name = ?
        ORDER BY id ASC
        LIMIT 1
        """,
        (full_name.strip(),),
    ).fetchone()
    if row is None:
        return None
    return _row_to_customer(row)


def upsert_customer(
    connection: sqlite3.Connection,
    full_name: str,
    address: str,
    email: Optional[str],
    phone: Optional[str],
) -> int:
    """Reuse the customer row with this exact name, overwriting its contact details."""
    existing = find_customer_by_name(connection, full_name)
    if existing is not None:
        update_customer(connection, existing.id, full_name, address, email, phone)
        return existing.id

    cursor = connection.execute(
        """
        INSERT INTO customers (full_name, address, email, phone)
        VALUES (?, ?, ?, ?)
        """,
        (full_name.strip(), address.strip(), email, phone),
    )
    return int(cursor.lastrowid)


def update_customer(
    connection: sqlite3.Connection,
    customer_id: int,
    full_name: str,
    address: str,
    email: Optional[str],
    phone: Optional[str],
) -> None:
    connection.execute(
        """
        UPDATE customers
        SET full_name = ?,
            address = ?,
            email = ?,
            phone = ?
        WHERE id = ?
        """,
        (full_name.strip(), address.strip(), email, phone, int(customer_id)),
    )


def fetch_customer(connection: sqlite3.Connection, customer_id: int) -> Optional[Customer]:
    row = connection.execute(
        "SELECT id, full_name, address, email, phone FROM customers WHERE id = ?",
        (int(customer_id),),
    ).fetchone()
    if row is None:
        return None
    return _row_to_customer(row)


def fetch_customer_summaries(
    search: Optional[str] = None,
    *,
    limit: Optional[int] = None,
) -> List[CustomerSummary]:
    sql = [
        """
        SELECT
            c.id,
            c.full_name,
            c.address,
            c.email,
            c.phone,
            COUNT(o.id) AS order_count,
            IFNULL(SUM(o.total_cents), 0) AS total_cents,
            IFNULL(SUM(o.is_paid), 0) AS paid_count,
            MAX(o.order_date) AS last_order_date
        FROM customers AS c
        LEFT JOIN orders AS o ON o.customer_id = c.id
        WHERE 1 = 1
        """
    ]
    params: List[object] = []

    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        sql.append(
            """
            AND (
                LOWER(c.full_name) LIKE ?
                OR LOWER(IFNULL(c.email, '')) LIKE ?
                OR IFNULL(c.phone, '') LIKE ?
                OR LOWER(c.address) LIKE ?
            )
            """
        )
        params.extend([pattern, pattern, f"%{search.strip()}%", pattern])

    sql.append("GROUP BY c.id")
    sql.append("ORDER BY total_cents DESC, c.full_name ASC")
    if limit is not None:
        sql.append("LIMIT ?")
        params.append(int(limit))

    with read_scope() as connection:
        rows = connection.execute("\n".join(sql), params).fetchall()

    return [
        CustomerSummary(
            customer_id=int(row["id"]),
            full_name=row["full_name"],
            address=row["address"],
            email=row["email"],
            phone=row["phone"],
            order_count=int(row["order_count"] or 0),
            total_spent=from_cents(row["total_cents"]),
            paid_count=int(row["paid_count"] or 0),
            last_order_date=_parse_date(row["last_order_date"]) if row["last_order_date"] else None,
        )
        for row in rows
    ]


def _row_to_customer(row: sqlite3.Row) -> Customer:
    return Customer(
        id=int(row["id"]),
        full_name=row["full_name"],
        address=row["address"],
        email=row["email"],
        phone=row["phone"],
    )


def _parse_date(raw: str) -> date:
    return datetime.strptime(raw, _DATE_FORMAT).date()
