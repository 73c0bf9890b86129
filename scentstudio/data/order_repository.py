from __future__ import annotations

import sqlite3
from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import CorruptRecord, DuplicateInvoiceNumber
from ..models.order_models import (
    Order,
    OrderHistoryEvent,
    OrderListing,
    OrderStatus,
    PaymentMethod,
    ProductLine,
    from_cents,
    to_cents,
)
from .database import read_scope


_DATE_FORMAT = "%Y-%m-%d"

_ORDER_SELECT = """
    SELECT
        o.id AS order_id,
        o.invoice_number,
        o.total_cents,
        o.order_date,
        o.is_paid,
        o.payment_method,
        o.status,
        o.revision,
        c.id AS customer_id,
        c.full_name,
        c.address,
        c.email,
        c.phone,
        op.id AS link_id,
        p.id AS product_id,
        p.name AS product_name,
        p.reference AS product_reference,
        p.brand AS product_brand
    FROM orders AS o
    LEFT JOIN customers AS c ON c.id = o.customer_id
    LEFT JOIN order_products AS op ON op.order_id = o.id
    LEFT JOIN products AS p ON p.id = op.product_id
"""


def insert_order(connection: sqlite3.Connection, customer_id: int, order: Order) -> int:
    invoice_number = order.invoice_number.strip()
    try:
        cursor = connection.execute(
            """
            INSERT INTO orders (
                customer_id,
                invoice_number,
                total_cents,
                order_date,
                is_paid,
                payment_method,
                status
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(customer_id),
                invoice_number,
                to_cents(order.total_amount),
                order.order_date.strftime(_DATE_FORMAT),
                int(bool(order.is_paid)),
                _enum_value(order.payment_method) if order.is_paid else None,
                _enum_value(order.status),
            ),
        )
    except sqlite3.IntegrityError as exc:
        if "invoice_number" in str(exc):
            raise DuplicateInvoiceNumber(invoice_number) from exc
        raise
    return int(cursor.lastrowid)


def fetch_order_header(connection: sqlite3.Connection, order_id: int) -> Optional[sqlite3.Row]:
    return connection.execute(
        """
        SELECT id, customer_id, invoice_number, total_cents, status, revision
        FROM orders
        WHERE id = ?
        """,
        (int(order_id),),
    ).fetchone()


def update_order_header(
    connection: sqlite3.Connection,
    order_id: int,
    order: Order,
    *,
    expected_revision: Optional[int] = None,
) -> bool:
    sql = """
        UPDATE orders
        SET
            invoice_number = ?,
            total_cents = ?,
            order_date = ?,
            is_paid = ?,
            payment_method = ?,
            status = ?,
            revision = revision + 1
        WHERE id = ?
    """
    params: List[object] = [
        order.invoice_number.strip(),
        to_cents(order.total_amount),
        order.order_date.strftime(_DATE_FORMAT),
        int(bool(order.is_paid)),
        _enum_value(order.payment_method) if order.is_paid else None,
        _enum_value(order.status),
        int(order_id),
    ]
    if expected_revision is not None:
        sql += " AND revision = ?"
        params.append(int(expected_revision))

    try:
        cursor = connection.execute(sql, params)
    except sqlite3.IntegrityError as exc:
        if "invoice_number" in str(exc):
            raise DuplicateInvoiceNumber(order.invoice_number.strip()) from exc
        raise
    return cursor.rowcount > 0


def delete_order(connection: sqlite3.Connection, order_id: int) -> bool:
    cursor = connection.execute("DELETE FROM orders WHERE id = ?", (int(order_id),))
    return cursor.rowcount > 0


def update_order_status(connection: sqlite3.Connection, order_id: int, status: OrderStatus) -> bool:
    cursor = connection.execute(
        "UPDATE orders SET status = ?, revision = revision + 1 WHERE id = ?",
        (_enum_value(status), int(order_id)),
    )
    return cursor.rowcount > 0


def update_payment_status(
    connection: sqlite3.Connection,
    order_id: int,
    is_paid: bool,
    payment_method: Optional[PaymentMethod],
) -> bool:
    cursor = connection.execute(
        """
        UPDATE orders
        SET is_paid = ?,
            payment_method = ?,
            revision = revision + 1
        WHERE id = ?
        """,
        (
            int(bool(is_paid)),
            _enum_value(payment_method) if is_paid else None,
            int(order_id),
        ),
    )
    return cursor.rowcount > 0


def fetch_highest_invoice_number(connection: sqlite3.Connection) -> Optional[str]:
    row = connection.execute(
        """
        SELECT invoice_number
        FROM orders
        WHERE invoice_number GLOB '[0-9]*'
        ORDER BY CAST(invoice_number AS INTEGER) DESC, LENGTH(invoice_number) ASC
        LIMIT 1
        """
    ).fetchone()
    if row is None:
        return None
    return row["invoice_number"]


def insert_links(connection: sqlite3.Connection, order_id: int, product_ids: Sequence[int]) -> None:
    connection.executemany(
        """
        INSERT INTO order_products (order_id, product_id, position)
        VALUES (?, ?, ?)
        """,
        [(int(order_id), int(product_id), position) for position, product_id in enumerate(product_ids)],
    )


def replace_links(connection: sqlite3.Connection, order_id: int, product_ids: Sequence[int]) -> None:
    """Make the order's links match ``product_ids``, keeping rows that are already correct."""
    current = connection.execute(
        """
        SELECT id, product_id
        FROM order_products
        WHERE order_id = ?
        ORDER BY position, id
        """,
        (int(order_id),),
    ).fetchall()

    remaining = Counter(int(product_id) for product_id in product_ids)
    kept: Dict[int, List[int]] = defaultdict(list)
    stale: List[int] = []
    for row in current:
        product_id = int(row["product_id"])
        if remaining[product_id] > 0:
            remaining[product_id] -= 1
            kept[product_id].append(int(row["id"]))
        else:
            stale.append(int(row["id"]))

    connection.executemany(
        "DELETE FROM order_products WHERE id = ?",
        [(link_id,) for link_id in stale],
    )

    for position, product_id in enumerate(product_ids):
        link_ids = kept[int(product_id)]
        if link_ids:
            connection.execute(
                "UPDATE order_products SET position = ? WHERE id = ?",
                (position, link_ids.pop(0)),
            )
        else:
            connection.execute(
                """
                INSERT INTO order_products (order_id, product_id, position)
                VALUES (?, ?, ?)
                """,
                (int(order_id), int(product_id), position),
            )


def fetch_orders(connection: Optional[sqlite3.Connection] = None) -> OrderListing:
    sql = _ORDER_SELECT + "\nORDER BY o.order_date DESC, o.id DESC, op.position ASC, op.id ASC"
    if connection is not None:
        return _build_listing(connection.execute(sql).fetchall())
    with read_scope() as scoped:
        return _build_listing(scoped.execute(sql).fetchall())


def fetch_order(connection: sqlite3.Connection, order_id: int) -> OrderListing:
    rows = connection.execute(
        _ORDER_SELECT + "\nWHERE o.id = ?\nORDER BY op.position ASC, op.id ASC",
        (int(order_id),),
    ).fetchall()
    return _build_listing(rows)


def _build_listing(rows: Sequence[sqlite3.Row]) -> OrderListing:
    grouped: Dict[int, List[sqlite3.Row]] = {}
    for row in rows:
        grouped.setdefault(int(row["order_id"]), []).append(row)

    listing = OrderListing()
    for order_id, order_rows in grouped.items():
        try:
            listing.orders.append(_build_order(order_id, order_rows))
        except CorruptRecord as exc:
            listing.errors.append(exc)
    return listing


def _build_order(order_id: int, rows: List[sqlite3.Row]) -> Order:
    head = rows[0]
    if head["customer_id"] is None:
        raise CorruptRecord(order_id, "customer")

    products: List[ProductLine] = []
    for row in rows:
        if row["link_id"] is None:
            continue
        if row["product_id"] is None:
            raise CorruptRecord(order_id, "product")
        products.append(
            ProductLine(
                name=row["product_name"],
                reference=row["product_reference"],
                brand=row["product_brand"],
            )
        )

    try:
        status = OrderStatus(head["status"] or OrderStatus.ORDERED.value)
        payment_method = PaymentMethod(head["payment_method"]) if head["payment_method"] else None
        order_date = _parse_date(head["order_date"])
    except (TypeError, ValueError) as exc:
        raise CorruptRecord(order_id, "order fields") from exc

    return Order(
        id=order_id,
        customer_name=head["full_name"],
        address=head["address"],
        email=head["email"],
        phone=head["phone"],
        invoice_number=head["invoice_number"],
        total_amount=from_cents(head["total_cents"]),
        order_date=order_date,
        status=status,
        is_paid=bool(head["is_paid"]),
        payment_method=payment_method,
        products=products,
        revision=int(head["revision"] or 1),
    )


def log_order_event(
    connection: sqlite3.Connection,
    order_id: Optional[int],
    invoice_number: str,
    event_type: str,
    description: str,
    amount_delta_cents: int = 0,
) -> None:
    connection.execute(
        """
        INSERT INTO order_history (
            order_id,
            invoice_number,
            event_type,
            description,
            amount_delta_cents
        ) VALUES (?, ?, ?, ?, ?)
        """,
        (
            int(order_id) if order_id is not None else None,
            invoice_number.strip(),
            event_type.strip(),
            description.strip(),
            int(amount_delta_cents),
        ),
    )


def fetch_order_history(
    invoice_number: Optional[str] = None,
    event_type: Optional[str] = None,
    limit: int = 200,
) -> List[OrderHistoryEvent]:
    sql = [
        """
        SELECT
            id,
            order_id,
            invoice_number,
            event_type,
            description,
            amount_delta_cents,
            created_at
        FROM order_history
        WHERE 1 = 1
        """
    ]
    params: List[object] = []

    if invoice_number:
        sql.append("AND invoice_number = ?")
        params.append(invoice_number.strip())

    if event_type:
        sql.append("AND event_type = ?")
        params.append(event_type.strip())

    sql.append("ORDER BY id DESC")
    sql.append("LIMIT ?")
    params.append(int(limit))

    with read_scope() as connection:
        rows = connection.execute("\n".join(sql), params).fetchall()

    return [
        OrderHistoryEvent(
            id=int(row["id"]),
            order_id=(int(row["order_id"]) if row["order_id"] is not None else None),
            invoice_number=row["invoice_number"],
            event_type=row["event_type"],
            description=row["description"],
            amount_delta=from_cents(row["amount_delta_cents"]),
            created_at=_parse_timestamp(row["created_at"]),
        )
        for row in rows
    ]


def fetch_sales_totals(start_date: Optional[date], end_date: Optional[date]) -> Tuple[int, int, int]:
    """Return ``(total_cents, order_count, paid_count)`` for the period."""
    with read_scope() as connection:
        row = connection.execute(
            """
            SELECT
                IFNULL(SUM(total_cents), 0) AS total_cents,
                COUNT(*) AS order_count,
                IFNULL(SUM(is_paid), 0) AS paid_count
            FROM orders
            WHERE (? IS NULL OR order_date >= ?)
              AND (? IS NULL OR order_date <= ?)
            """,
            _period_params(start_date, end_date),
        ).fetchone()
    return int(row["total_cents"]), int(row["order_count"]), int(row["paid_count"])


def fetch_status_counts(start_date: Optional[date], end_date: Optional[date]) -> Dict[str, int]:
    with read_scope() as connection:
        rows = connection.execute(
            """
            SELECT status, COUNT(*) AS order_count
            FROM orders
            WHERE (? IS NULL OR order_date >= ?)
              AND (? IS NULL OR order_date <= ?)
            GROUP BY status
            """,
            _period_params(start_date, end_date),
        ).fetchall()
    return {row["status"]: int(row["order_count"]) for row in rows}


def fetch_product_line_counts(
    start_date: Optional[date],
    end_date: Optional[date],
) -> List[sqlite3.Row]:
    with read_scope() as connection:
        return connection.execute(
            """
            SELECT
                p.reference,
                (SELECT latest.name FROM products AS latest
                 WHERE latest.reference = p.reference
                 ORDER BY latest.version DESC LIMIT 1) AS name,
                (SELECT latest.brand FROM products AS latest
                 WHERE latest.reference = p.reference
                 ORDER BY latest.version DESC LIMIT 1) AS brand,
                COUNT(*) AS line_count
            FROM order_products AS op
            JOIN orders AS o ON o.id = op.order_id
            JOIN products AS p ON p.id = op.product_id
            WHERE (? IS NULL OR o.order_date >= ?)
              AND (? IS NULL OR o.order_date <= ?)
            GROUP BY p.reference
            ORDER BY line_count DESC, p.reference ASC
            """,
            _period_params(start_date, end_date),
        ).fetchall()


def fetch_monthly_revenue(
    start_date: Optional[date],
    end_date: Optional[date],
) -> List[sqlite3.Row]:
    with read_scope() as connection:
        return connection.execute(
            """
            SELECT
                SUBSTR(order_date, 1, 7) AS month,
                IFNULL(SUM(total_cents), 0) AS total_cents,
                COUNT(*) AS order_count
            FROM orders
            WHERE (? IS NULL OR order_date >= ?)
              AND (? IS NULL OR order_date <= ?)
            GROUP BY month
            ORDER BY month ASC
            """,
            _period_params(start_date, end_date),
        ).fetchall()


def _period_params(start_date: Optional[date], end_date: Optional[date]) -> Tuple[object, ...]:
    return (
        _format_date(start_date),
        _format_date(start_date),
        _format_date(end_date),
        _format_date(end_date),
    )


def _enum_value(value: object) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "value", value)


def _format_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime(_DATE_FORMAT)


def _parse_date(raw: str) -> date:
    return datetime.strptime(raw, _DATE_FORMAT).date()


def _parse_timestamp(raw: str) -> datetime:
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return datetime.strptime(raw, "%Y-%m-%d %H:%M:%S")
