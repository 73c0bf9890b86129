"""Sequential invoice numbers.

The next number is derived from the highest number already stored, so two
callers that allocate before either one saves can receive the same value.
``orders.invoice_number`` is UNIQUE: the second insert then fails with
``DuplicateInvoiceNumber`` and the caller decides whether to allocate again.
Allocation done inside the writer's own transaction (blank invoice number on
``create_order``) holds the database write lock and cannot collide.
"""
from __future__ import annotations

import logging
import re
import sqlite3
from typing import Optional

from ..data import order_repository, settings_repository
from ..data.database import read_scope
from ..errors import StorageUnavailable

logger = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


def next_invoice_number(
    connection: Optional[sqlite3.Connection] = None,
    *,
    padding: Optional[int] = None,
) -> str:
    if padding is None:
        padding = settings_repository.get_app_settings().invoice_number_padding

    try:
        if connection is not None:
            highest = order_repository.fetch_highest_invoice_number(connection)
        else:
            with read_scope() as scoped:
                highest = order_repository.fetch_highest_invoice_number(scoped)
    except StorageUnavailable as exc:
        logger.warning("Unable to read the last invoice number: %s", exc)
        raise

    return format_invoice_number(parse_sequence(highest) + 1, padding=padding)


def parse_sequence(invoice_number: Optional[str]) -> int:
    if not invoice_number:
        return 0
    match = _LEADING_DIGITS.match(invoice_number)
    if match is None:
        return 0
    return int(match.group(1))


def format_invoice_number(sequence: int, *, padding: int = 3) -> str:
    return f"{max(1, int(sequence)):0{max(1, int(padding))}d}"
