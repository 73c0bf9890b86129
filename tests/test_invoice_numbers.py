from __future__ import annotations

import sqlite3

import pytest

from scentstudio.data import order_repository, settings_repository
from scentstudio.errors import DuplicateInvoiceNumber, StorageUnavailable
from scentstudio.services import invoice_numbers, order_service


def test_empty_store_starts_at_001():
    assert invoice_numbers.next_invoice_number() == "001"
    assert order_service.next_invoice_number() == "001"


def test_serial_allocation_is_strictly_increasing(make_order):
    issued = []
    for index in range(12):
        number = order_service.next_invoice_number()
        order_service.create_order(make_order(invoice_number=number, customer_name=f"Client {index}"))
        issued.append(number)

    assert issued[:3] == ["001", "002", "003"]
    assert issued[9] == "010"
    assert [int(number) for number in issued] == list(range(1, 13))


def test_width_grows_past_three_digits(make_order):
    order_service.create_order(make_order(invoice_number="999"))
    assert invoice_numbers.next_invoice_number() == "1000"

    order_service.create_order(make_order(invoice_number="1000", customer_name="Marie Curie"))
    assert invoice_numbers.next_invoice_number() == "1001"


def test_non_numeric_invoice_numbers_are_ignored(make_order):
    order_service.create_order(make_order(invoice_number="AVOIR-7"))
    assert invoice_numbers.next_invoice_number() == "001"


def test_leading_digits_are_parsed():
    assert invoice_numbers.parse_sequence("041") == 41
    assert invoice_numbers.parse_sequence("12b") == 12
    assert invoice_numbers.parse_sequence("") == 0
    assert invoice_numbers.parse_sequence(None) == 0


def test_padding_comes_from_settings():
    settings_repository.set_setting("invoice_number_padding", "5")
    assert invoice_numbers.next_invoice_number() == "00001"
    assert invoice_numbers.next_invoice_number(padding=2) == "01"


def test_query_failure_is_reported_not_fabricated(monkeypatch):
    def broken(connection):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(order_repository, "fetch_highest_invoice_number", broken)
    with pytest.raises(StorageUnavailable):
        invoice_numbers.next_invoice_number()


def test_racing_allocation_surfaces_as_duplicate(make_order):
    first = invoice_numbers.next_invoice_number()
    second = invoice_numbers.next_invoice_number()
    assert first == second

    order_service.create_order(make_order(invoice_number=first))
    with pytest.raises(DuplicateInvoiceNumber) as excinfo:
        order_service.create_order(make_order(invoice_number=second, customer_name="Marie Curie"))

    assert excinfo.value.invoice_number == "001"
    assert len(order_service.list_orders()) == 1


def test_blank_invoice_number_is_allocated_by_the_writer(make_order):
    first_id = order_service.create_order(make_order(invoice_number=""))
    second_id = order_service.create_order(make_order(invoice_number="  ", customer_name="Marie Curie"))

    assert order_service.get_order(first_id).invoice_number == "001"
    assert order_service.get_order(second_id).invoice_number == "002"


def test_wider_but_smaller_number_does_not_stall_the_sequence(make_order):
    order_service.create_order(make_order(invoice_number="0005"))
    assert invoice_numbers.next_invoice_number() == "006"

    order_service.create_order(make_order(invoice_number="006", customer_name="Marie Curie"))
    assert invoice_numbers.next_invoice_number() == "007"


def test_lowering_the_padding_keeps_allocating(make_order):
    settings_repository.set_setting("invoice_number_padding", "4")
    order_service.create_order(make_order(invoice_number=""))
    order_service.create_order(make_order(invoice_number="", customer_name="Marie Curie"))

    settings_repository.set_setting("invoice_number_padding", "3")
    third_id = order_service.create_order(make_order(invoice_number="", customer_name="Paul Martin"))
    fourth_id = order_service.create_order(make_order(invoice_number="", customer_name="Anne Morel"))

    assert order_service.get_order(third_id).invoice_number == "003"
    assert order_service.get_order(fourth_id).invoice_number == "004"
    assert sorted(order.invoice_number for order in order_service.list_orders()) == [
        "0001",
        "0002",
        "003",
        "004",
    ]
