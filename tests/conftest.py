from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from scentstudio.data import database
from scentstudio.models.order_models import Order, OrderStatus, ProductLine


@pytest.fixture(autouse=True)
def studio_db(tmp_path, monkeypatch):
    monkeypatch.setenv("SCENTSTUDIO_HOME", str(tmp_path))
    monkeypatch.setenv("SCENTSTUDIO_DB_TIMEOUT", "1")
    database.initialize()
    return database.get_database_path()


@pytest.fixture
def make_order():
    def _make(
        invoice_number="001",
        customer_name="Jean Dupont",
        products=None,
        **overrides,
    ):
        fields = dict(
            customer_name=customer_name,
            address="1 rue A",
            invoice_number=invoice_number,
            total_amount=Decimal("35.00"),
            order_date=date(2024, 1, 1),
            status=OrderStatus.ORDERED,
            products=products if products is not None else [ProductLine(name="Parfum X", reference="REF1")],
        )
        fields.update(overrides)
        return Order(**fields)

    return _make
