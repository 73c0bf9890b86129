from __future__ import annotations

import os
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator

from ..errors import StorageUnavailable


_DB_FILE = "scentstudio.db"
_DEFAULT_TIMEOUT = 5.0


def _get_storage_directory() -> Path:
    override = os.getenv("SCENTSTUDIO_HOME")
    if override:
        target = Path(override)
    else:
        base = Path(os.getenv("LOCALAPPDATA", Path.home()))
        target = base / "ScentStudio"
    target.mkdir(parents=True, exist_ok=True)
    return target


def get_database_path() -> Path:
    return _get_storage_directory() / _DB_FILE


def get_storage_timeout() -> float:
    raw = os.getenv("SCENTSTUDIO_DB_TIMEOUT", "")
    try:
        value = float(raw) if raw.strip() else _DEFAULT_TIMEOUT
    except ValueError:
        value = _DEFAULT_TIMEOUT
    return max(0.0, value)


def create_connection() -> sqlite3.Connection:
    try:
        connection = sqlite3.connect(get_database_path(), timeout=get_storage_timeout())
    except (sqlite3.Error, OSError) as exc:
        raise StorageUnavailable(f"Unable to open database: {exc}") from exc
    connection.row_factory = sqlite3.Row
    try:
        _apply_pragmas(connection)
    except sqlite3.Error as exc:
        connection.close()
        raise StorageUnavailable(f"Unable to configure database: {exc}") from exc
    return connection


def _apply_pragmas(connection: sqlite3.Connection) -> None:
    cursor = connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")
    cursor.execute("PRAGMA journal_mode = WAL;")
    cursor.close()


@contextmanager
def read_scope() -> Iterator[sqlite3.Connection]:
    """Open a connection for reads; backend failures surface as ``StorageUnavailable``."""
    with closing(create_connection()) as connection:
        try:
            yield connection
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            raise StorageUnavailable(str(exc)) from exc


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements as one ``BEGIN IMMEDIATE`` transaction.

    The write lock is taken up front, so concurrent writers queue behind each
    other for at most the configured timeout. Any exception rolls back every
    statement issued inside the block.
    """
    with closing(create_connection()) as connection:
        connection.isolation_level = None
        try:
            connection.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Unable to start transaction: {exc}") from exc

        try:
            yield connection
        except sqlite3.IntegrityError:
            _rollback(connection)
            raise
        except sqlite3.Error as exc:
            _rollback(connection)
            raise StorageUnavailable(str(exc)) from exc
        except BaseException:
            _rollback(connection)
            raise

        try:
            connection.execute("COMMIT")
        except sqlite3.Error as exc:
            _rollback(connection)
            raise StorageUnavailable(f"Unable to commit transaction: {exc}") from exc


def _rollback(connection: sqlite3.Connection) -> None:
    if connection.in_transaction:
        connection.execute("ROLLBACK")


def initialize() -> None:
    with closing(create_connection()) as connection:
        try:
            _create_schema(connection)
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Unable to initialize database: {exc}") from exc


def _create_schema(connection: sqlite3.Connection) -> None:
    cursor = connection.cursor()
    cursor.executescript(
        """
        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            full_name TEXT NOT NULL,
            address TEXT NOT NULL DEFAULT '',
            email TEXT,
            phone TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_customers_full_name
        ON customers(full_name);

        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            reference TEXT NOT NULL,
            version INTEGER NOT NULL DEFAULT 1,
            name TEXT NOT NULL,
            brand TEXT,
            UNIQUE(reference, version)
        );

        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS orders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id INTEGER NOT NULL REFERENCES customers(id),
            invoice_number TEXT NOT NULL UNIQUE,
            total_cents INTEGER NOT NULL DEFAULT 0,
            order_date TEXT NOT NULL,
            is_paid INTEGER NOT NULL DEFAULT 0,
            payment_method TEXT,
            status TEXT NOT NULL DEFAULT 'ordered'
        );

        CREATE INDEX IF NOT EXISTS idx_orders_order_date
        ON orders(order_date);

        CREATE TABLE IF NOT EXISTS order_products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            position INTEGER NOT NULL DEFAULT 0,
            FOREIGN KEY(order_id) REFERENCES orders(id) ON DELETE CASCADE,
            FOREIGN KEY(product_id) REFERENCES products(id) ON DELETE CASCADE
        );

        CREATE INDEX IF NOT EXISTS idx_order_products_order_id
        ON order_products(order_id);

        CREATE INDEX IF NOT EXISTS idx_order_products_product_id
        ON order_products(product_id);

        CREATE TABLE IF NOT EXISTS order_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            order_id INTEGER,
            invoice_number TEXT NOT NULL DEFAULT '',
            event_type TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            amount_delta_cents INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_order_history_invoice_number
        ON order_history(invoice_number);
        """
    )

    _ensure_column(connection, "orders", "revision", "INTEGER NOT NULL DEFAULT 1")

    cursor.close()
    connection.commit()


def _ensure_column(connection: sqlite3.Connection, table: str, column: str, definition: str) -> None:
    info = connection.execute(f"PRAGMA table_info({table});").fetchall()
    if not any(row[1] == column for row in info):
        connection.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition};")
