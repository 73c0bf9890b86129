from __future__ import annotations

import sqlite3

import pytest

from scentstudio.data import database
from scentstudio.errors import StorageUnavailable
from scentstudio.services import order_service


def test_initialize_is_idempotent(make_order):
    order_id = order_service.create_order(make_order())
    database.initialize()

    assert order_service.get_order(order_id).invoice_number == "001"


def test_transaction_rolls_back_on_error(studio_db):
    with pytest.raises(RuntimeError):
        with database.transaction() as connection:
            connection.execute("INSERT INTO settings (key, value) VALUES ('k', 'v')")
            raise RuntimeError("boom")

    with database.read_scope() as connection:
        assert connection.execute("SELECT COUNT(*) FROM settings").fetchone()[0] == 0


def test_backend_errors_become_storage_unavailable():
    with pytest.raises(StorageUnavailable):
        with database.transaction() as connection:
            connection.execute("SELECT * FROM missing_table")


def test_unreachable_storage(tmp_path, monkeypatch):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    monkeypatch.setenv("SCENTSTUDIO_HOME", str(blocker))

    with pytest.raises(StorageUnavailable):
        order_service.list_orders()


def test_locked_store_times_out(studio_db, monkeypatch, make_order):
    monkeypatch.setenv("SCENTSTUDIO_DB_TIMEOUT", "0")
    holder = sqlite3.connect(studio_db, isolation_level=None)
    try:
        holder.execute("BEGIN IMMEDIATE")
        with pytest.raises(StorageUnavailable):
            order_service.create_order(make_order())
    finally:
        holder.execute("ROLLBACK")
        holder.close()

    assert order_service.list_orders() == []


@pytest.mark.parametrize("raw, expected", [("", 5.0), ("2.5", 2.5), ("soon", 5.0), ("-3", 0.0)])
def test_storage_timeout_from_environment(monkeypatch, raw, expected):
    monkeypatch.setenv("SCENTSTUDIO_DB_TIMEOUT", raw)
    assert database.get_storage_timeout() == expected
