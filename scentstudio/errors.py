from __future__ import annotations

from typing import Optional


class StudioError(Exception):
    """Base class for every error raised by the order core."""


class StorageUnavailable(StudioError):
    """The database could not be opened, was locked past the timeout, or failed mid-call."""


class DuplicateInvoiceNumber(StudioError):
    def __init__(self, invoice_number: str) -> None:
        super().__init__(f"Invoice number '{invoice_number}' is already in use.")
        self.invoice_number = invoice_number


class InvalidLineItem(StudioError, ValueError):
    def __init__(self, index: int, field: str) -> None:
        super().__init__(f"Product {index + 1} is invalid: {field} is missing.")
        self.index = index
        self.field = field


class InvalidOrder(StudioError, ValueError):
    pass


class InvalidProduct(StudioError, ValueError):
    pass


class OrderNotFound(StudioError, LookupError):
    def __init__(self, order_id: Optional[int]) -> None:
        super().__init__(f"Order {order_id} not found.")
        self.order_id = order_id


class ProductNotFound(StudioError, LookupError):
    def __init__(self, product_id: Optional[int]) -> None:
        super().__init__(f"Product {product_id} not found.")
        self.product_id = product_id


class CorruptRecord(StudioError):
    def __init__(self, order_id: int, relation: str) -> None:
        super().__init__(f"Order {order_id} has no matching {relation}.")
        self.order_id = order_id
        self.relation = relation


class CatalogConflict(StudioError):
    def __init__(self, reference: str, message: str) -> None:
        super().__init__(message)
        self.reference = reference


class StaleOrder(StudioError):
    def __init__(self, order_id: int, expected_revision: int) -> None:
        super().__init__(
            f"Order {order_id} was modified since revision {expected_revision} was read."
        )
        self.order_id = order_id
        self.expected_revision = expected_revision
