from __future__ import annotations

from datetime import date
from decimal import Decimal

from scentstudio.models.order_models import PaymentMethod
from scentstudio.services import order_service


def test_customer_statistics(make_order):
    order_service.create_order(
        make_order(
            invoice_number="001",
            total_amount=Decimal("40.00"),
            is_paid=True,
            payment_method=PaymentMethod.CASH,
        )
    )
    order_service.create_order(
        make_order(invoice_number="002", total_amount=Decimal("20.00"), order_date=date(2024, 2, 5))
    )
    order_service.create_order(
        make_order(invoice_number="003", customer_name="Marie Curie", total_amount=Decimal("15.00"))
    )

    jean, marie = order_service.list_customers()

    assert jean.full_name == "Jean Dupont"
    assert jean.order_count == 2
    assert jean.total_spent == Decimal("60.00")
    assert jean.average_order == Decimal("30.00")
    assert jean.paid_percentage == 50.0
    assert jean.last_order_date == date(2024, 2, 5)
    assert marie.total_spent == Decimal("15.00")


def test_customer_filters(make_order):
    order_service.create_order(make_order(invoice_number="001", email="jean@example.com"))
    order_service.create_order(
        make_order(invoice_number="002", customer_name="Marie Curie", total_amount=Decimal("5.00"))
    )

    assert [c.full_name for c in order_service.list_customers("EXAMPLE")] == ["Jean Dupont"]
    assert [c.full_name for c in order_service.list_customers(min_total_spent=Decimal("10"))] == [
        "Jean Dupont"
    ]


def test_customer_without_orders_after_delete(make_order):
    order_id = order_service.create_order(make_order())
    order_service.delete_order(order_id)

    (customer,) = order_service.list_customers()
    assert customer.order_count == 0
    assert customer.average_order == Decimal("0.00")
    assert customer.paid_percentage == 0.0
    assert customer.last_order_date is None
