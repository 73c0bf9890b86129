from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import List, Optional

from ..data import customer_repository, order_repository, product_repository, settings_repository
from ..data.database import read_scope, transaction
from ..errors import (
    InvalidOrder,
    OrderNotFound,
    StaleOrder,
    StudioError,
)
from ..models.order_models import (
    AppSettings,
    CatalogPolicy,
    CustomerSummary,
    Order,
    OrderHistoryEvent,
    OrderListing,
    OrderStatus,
    PaymentMethod,
    Product,
    to_cents,
)
from . import catalog_reconciler, invoice_numbers

logger = logging.getLogger(__name__)


class UpdateStep(str, Enum):
    FETCH_OLD = "fetch_old"
    DELETE_OLD = "delete_old"
    UPDATE_CUSTOMER = "update_customer"
    INSERT_NEW = "insert_new"
    RECONCILE_PRODUCTS = "reconcile_products"


def next_invoice_number() -> str:
    return invoice_numbers.next_invoice_number()


def create_order(order: Order, *, policy: Optional[CatalogPolicy] = None) -> int:
    """Persist a new order with its customer snapshot and product links.

    Every write happens in one transaction: a duplicate invoice number, an
    invalid line item or a catalog conflict leaves nothing behind. A blank
    invoice number is allocated inside that transaction.
    """
    try:
        normalized = normalize_order(order)
        settings = settings_repository.get_app_settings()
        active_policy = _resolve_policy(policy, settings)

        with transaction() as connection:
            if not normalized.invoice_number:
                normalized = replace(
                    normalized,
                    invoice_number=invoice_numbers.next_invoice_number(
                        connection,
                        padding=settings.invoice_number_padding,
                    ),
                )
            customer_id = customer_repository.upsert_customer(
                connection,
                normalized.customer_name,
                normalized.address,
                normalized.email,
                normalized.phone,
            )
            order_id = order_repository.insert_order(connection, customer_id, normalized)
            catalog_reconciler.reconcile(
                connection,
                order_id,
                normalized.products,
                active_policy,
                invoice_number=normalized.invoice_number,
            )
            order_repository.log_order_event(
                connection,
                order_id,
                normalized.invoice_number,
                "Created",
                f"Order created with {normalized.product_count} products.",
                to_cents(normalized.total_amount),
            )
    except StudioError as exc:
        logger.warning("Order %r could not be created: %s", order.invoice_number, exc)
        raise

    logger.info("Created order %s (invoice %s)", order_id, normalized.invoice_number)
    return order_id


def update_order(
    order: Order,
    *,
    policy: Optional[CatalogPolicy] = None,
    preserve_identity: Optional[bool] = None,
) -> int:
    """Replace an order's content and return the id it is stored under afterwards.

    By default the order is deleted and inserted again, so the returned id is
    new. The whole sequence runs in one transaction and any failure restores
    the original order, its links and its customer row. With
    ``preserve_identity`` the header is updated in place and only the product
    links that changed are rewritten.
    """
    if order.id is None:
        raise OrderNotFound(None)

    try:
        normalized = normalize_order(order)
        if not normalized.invoice_number:
            raise InvalidOrder("Invoice number is required.")
        settings = settings_repository.get_app_settings()
        active_policy = _resolve_policy(policy, settings)
    except StudioError as exc:
        logger.warning("Order %s could not be updated: %s", order.id, exc)
        raise

    if preserve_identity is None:
        preserve_identity = settings.order_update_mode == "in_place"

    if preserve_identity:
        return _update_in_place(normalized, active_policy)
    return _recreate(normalized, active_policy)


def _recreate(order: Order, policy: CatalogPolicy) -> int:
    old_id = int(order.id)
    step = UpdateStep.FETCH_OLD
    try:
        with transaction() as connection:
            header = order_repository.fetch_order_header(connection, old_id)
            if header is None:
                raise OrderNotFound(old_id)
            customer_id = int(header["customer_id"])

            step = UpdateStep.DELETE_OLD
            order_repository.delete_order(connection, old_id)

            step = UpdateStep.UPDATE_CUSTOMER
            customer_repository.update_customer(
                connection,
                customer_id,
                order.customer_name,
                order.address,
                order.email,
                order.phone,
            )

            step = UpdateStep.INSERT_NEW
            new_id = order_repository.insert_order(connection, customer_id, order)

            step = UpdateStep.RECONCILE_PRODUCTS
            catalog_reconciler.reconcile(
                connection,
                new_id,
                order.products,
                policy,
                invoice_number=order.invoice_number,
            )
            order_repository.log_order_event(
                connection,
                new_id,
                order.invoice_number,
                "Updated",
                f"Order {old_id} replaced by order {new_id}.",
                to_cents(order.total_amount) - int(header["total_cents"]),
            )
    except StudioError as exc:
        logger.warning(
            "Order %s update failed during %s, original kept: %s",
            old_id,
            step.value,
            exc,
        )
        raise

    logger.info("Order %s replaced by order %s", old_id, new_id)
    return new_id


def _update_in_place(order: Order, policy: CatalogPolicy) -> int:
    order_id = int(order.id)
    try:
        with transaction() as connection:
            header = order_repository.fetch_order_header(connection, order_id)
            if header is None:
                raise OrderNotFound(order_id)

            updated = order_repository.update_order_header(
                connection,
                order_id,
                order,
                expected_revision=order.revision,
            )
            if not updated:
                raise StaleOrder(order_id, int(order.revision))

            customer_repository.update_customer(
                connection,
                int(header["customer_id"]),
                order.customer_name,
                order.address,
                order.email,
                order.phone,
            )
            product_ids = catalog_reconciler.resolve_products(
                connection,
                order.products,
                policy,
                order_id=order_id,
                invoice_number=order.invoice_number,
            )
            order_repository.replace_links(connection, order_id, product_ids)
            order_repository.log_order_event(
                connection,
                order_id,
                order.invoice_number,
                "Updated",
                "Order updated in place.",
                to_cents(order.total_amount) - int(header["total_cents"]),
            )
    except StudioError as exc:
        logger.warning("Order %s could not be updated in place: %s", order_id, exc)
        raise

    logger.info("Order %s updated in place", order_id)
    return order_id


def delete_order(order_id: int) -> None:
    try:
        with transaction() as connection:
            header = order_repository.fetch_order_header(connection, order_id)
            if header is None:
                raise OrderNotFound(order_id)
            order_repository.delete_order(connection, order_id)
            order_repository.log_order_event(
                connection,
                order_id,
                header["invoice_number"],
                "Deleted",
                "Order deleted.",
                -int(header["total_cents"]),
            )
    except StudioError as exc:
        logger.warning("Order %s could not be deleted: %s", order_id, exc)
        raise
    logger.info("Deleted order %s", order_id)


def update_order_status(order_id: int, status: OrderStatus) -> None:
    try:
        normalized_status = _coerce_status(status)
        with transaction() as connection:
            header = order_repository.fetch_order_header(connection, order_id)
            if header is None:
                raise OrderNotFound(order_id)
            order_repository.update_order_status(connection, order_id, normalized_status)
            if header["status"] != normalized_status.value:
                order_repository.log_order_event(
                    connection,
                    order_id,
                    header["invoice_number"],
                    "StatusChanged",
                    f"Status changed from {header['status']} to {normalized_status.value}.",
                )
    except StudioError as exc:
        logger.warning("Status of order %s could not be changed: %s", order_id, exc)
        raise


def update_payment_status(
    order_id: int,
    is_paid: bool,
    payment_method: Optional[PaymentMethod] = None,
) -> None:
    try:
        method = _coerce_payment(bool(is_paid), payment_method)
        with transaction() as connection:
            header = order_repository.fetch_order_header(connection, order_id)
            if header is None:
                raise OrderNotFound(order_id)
            order_repository.update_payment_status(connection, order_id, bool(is_paid), method)
            order_repository.log_order_event(
                connection,
                order_id,
                header["invoice_number"],
                "PaymentChanged",
                f"Marked as paid by {method.value}." if method else "Marked as unpaid.",
            )
    except StudioError as exc:
        logger.warning("Payment of order %s could not be changed: %s", order_id, exc)
        raise


def read_orders() -> OrderListing:
    """Load every order, newest first, separating rows with missing relations."""
    return order_repository.fetch_orders()


def list_orders() -> List[Order]:
    listing = read_orders()
    for error in listing.errors:
        logger.warning("Skipping order %s: %s", error.order_id, error)
    return listing.orders


def get_order(order_id: int) -> Order:
    with read_scope() as connection:
        listing = order_repository.fetch_order(connection, order_id)
    if listing.errors:
        error = listing.errors[0]
        logger.warning("Order %s is corrupt: %s", order_id, error)
        raise error
    if not listing.orders:
        raise OrderNotFound(order_id)
    return listing.orders[0]


def list_products(search: Optional[str] = None) -> List[Product]:
    return product_repository.list_products(search)


def save_product(product: Product) -> Product:
    return product_repository.save_product(product)


def delete_product(product_id: int) -> int:
    linked = product_repository.delete_product(product_id)
    if linked:
        logger.info("Deleted product %s, removed from %s orders", product_id, linked)
    return linked


def list_customers(
    search: Optional[str] = None,
    *,
    min_total_spent: Optional[Decimal] = None,
) -> List[CustomerSummary]:
    customers = customer_repository.fetch_customer_summaries(search)
    if min_total_spent is not None:
        threshold = Decimal(str(min_total_spent))
        customers = [customer for customer in customers if customer.total_spent >= threshold]
    return customers


def list_order_history(
    invoice_number: Optional[str] = None,
    event_type: Optional[str] = None,
    limit: int = 200,
) -> List[OrderHistoryEvent]:
    return order_repository.fetch_order_history(invoice_number, event_type, limit)


def normalize_order(order: Order) -> Order:
    products = catalog_reconciler.validate_line_items(order.products)

    customer_name = (order.customer_name or "").strip()
    if not customer_name:
        raise InvalidOrder("Customer name is required.")

    if not isinstance(order.order_date, date):
        raise InvalidOrder("Order date must be a date.")

    try:
        total_amount = Decimal(str(order.total_amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidOrder(f"Invalid total amount {order.total_amount!r}.") from exc
    if not total_amount.is_finite() or total_amount < 0:
        raise InvalidOrder("Total amount must be a non-negative number.")
    if total_amount != total_amount.quantize(Decimal("0.01")):
        raise InvalidOrder(f"Total amount {total_amount} has more than two decimal places.")

    return replace(
        order,
        customer_name=customer_name,
        address=(order.address or "").strip(),
        email=(order.email or "").strip() or None,
        phone=(order.phone or "").strip() or None,
        invoice_number=(order.invoice_number or "").strip(),
        total_amount=total_amount,
        status=_coerce_status(order.status),
        is_paid=bool(order.is_paid),
        payment_method=_coerce_payment(bool(order.is_paid), order.payment_method),
        products=products,
    )


def _resolve_policy(policy: object, settings: AppSettings) -> CatalogPolicy:
    if policy is None:
        return settings.catalog_policy
    try:
        return CatalogPolicy(policy)
    except ValueError as exc:
        raise InvalidOrder(f"Unknown catalog policy {policy!r}.") from exc


def _coerce_status(status: object) -> OrderStatus:
    if status is None or status == "":
        return OrderStatus.ORDERED
    try:
        return OrderStatus(status)
    except ValueError as exc:
        raise InvalidOrder(f"Unknown order status {status!r}.") from exc


def _coerce_payment(is_paid: bool, payment_method: object) -> Optional[PaymentMethod]:
    if not is_paid:
        return None
    if payment_method is None or payment_method == "":
        raise InvalidOrder("A paid order needs a payment method.")
    try:
        return PaymentMethod(payment_method)
    except ValueError as exc:
        raise InvalidOrder(f"Unknown payment method {payment_method!r}.") from exc

