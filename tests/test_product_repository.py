from __future__ import annotations

import pytest

from scentstudio.errors import CatalogConflict, InvalidProduct, ProductNotFound, StudioError
from scentstudio.models.order_models import Product, ProductLine
from scentstudio.services import order_service


def test_save_product_creates_and_renames():
    created = order_service.save_product(Product(id=None, reference=" REF7 ", name="Ambre", brand=" "))
    assert created.id is not None
    assert created.reference == "REF7"
    assert created.brand is None
    assert created.version == 1

    renamed = order_service.save_product(Product(id=created.id, reference="REF7", name="Ambre Noir"))
    assert renamed.id == created.id
    assert renamed.name == "Ambre Noir"


def test_save_product_rejects_blank_fields():
    with pytest.raises(InvalidProduct):
        order_service.save_product(Product(id=None, reference="", name="Ambre"))
    with pytest.raises(StudioError):
        order_service.save_product(Product(id=None, reference="REF7", name="  "))


def test_save_product_conflicting_reference():
    order_service.save_product(Product(id=None, reference="REF7", name="Ambre"))

    with pytest.raises(CatalogConflict) as excinfo:
        order_service.save_product(Product(id=None, reference="REF7", name="Autre"))
    assert excinfo.value.reference == "REF7"


def test_save_unknown_product():
    with pytest.raises(ProductNotFound):
        order_service.save_product(Product(id=99, reference="REF7", name="Ambre"))


def test_list_products_search(make_order):
    order_service.create_order(
        make_order(
            products=[
                ProductLine(name="Rose de Mai", reference="ROSE1", brand="Maison A"),
                ProductLine(name="Vetiver", reference="VET1"),
            ]
        )
    )

    assert [product.reference for product in order_service.list_products("rose")] == ["ROSE1"]
    assert [product.reference for product in order_service.list_products("maison")] == ["ROSE1"]
    assert len(order_service.list_products()) == 2


def test_delete_product_reports_linked_orders(make_order):
    order_service.create_order(make_order(invoice_number="001"))
    second_id = order_service.create_order(
        make_order(
            invoice_number="002",
            products=[
                ProductLine(name="Parfum X", reference="REF1"),
                ProductLine(name="Vetiver", reference="VET1"),
            ],
        )
    )
    product_id = next(p.id for p in order_service.list_products() if p.reference == "REF1")

    assert order_service.delete_product(product_id) == 2
    assert [line.reference for line in order_service.get_order(second_id).products] == ["VET1"]

    with pytest.raises(ProductNotFound):
        order_service.delete_product(product_id)
