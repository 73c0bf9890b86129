from __future__ import annotations

from typing import Dict

from ..models.order_models import AppSettings, CatalogPolicy
from .database import read_scope, transaction

_DEFAULTS: Dict[str, str] = {
    "business_name": "Atelier Parfum",
    "catalog_policy": CatalogPolicy.OVERWRITE.value,
    "invoice_number_padding": "3",
    "order_update_mode": "recreate",
}

_UPDATE_MODES = {"recreate", "in_place"}


def get_setting(key: str) -> str:
    key = key.strip()
    with read_scope() as connection:
        row = connection.execute(
            "SELECT value FROM settings WHERE key = ?",
            (key,),
        ).fetchone()

    if row is None:
        return _DEFAULTS.get(key, "")
    return row["value"]


def set_setting(key: str, value: str) -> None:
    key = key.strip()
    with transaction() as connection:
        connection.execute(
            """
            INSERT INTO settings (key, value)
            VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )


def get_app_settings() -> AppSettings:
    business_name = get_setting("business_name").strip() or _DEFAULTS["business_name"]

    raw_policy = (get_setting("catalog_policy") or _DEFAULTS["catalog_policy"]).strip().lower()
    try:
        catalog_policy = CatalogPolicy(raw_policy)
    except ValueError:
        catalog_policy = CatalogPolicy(_DEFAULTS["catalog_policy"])

    try:
        padding = int(get_setting("invoice_number_padding") or _DEFAULTS["invoice_number_padding"])
    except ValueError:
        padding = int(_DEFAULTS["invoice_number_padding"])
    padding = max(1, min(12, padding))

    update_mode = (get_setting("order_update_mode") or _DEFAULTS["order_update_mode"]).strip().lower()
    if update_mode not in _UPDATE_MODES:
        update_mode = _DEFAULTS["order_update_mode"]

    return AppSettings(
        business_name=business_name,
        catalog_policy=catalog_policy,
        invoice_number_padding=padding,
        order_update_mode=update_mode,
    )


def update_app_settings(settings: AppSettings) -> AppSettings:
    update_mode = settings.order_update_mode.strip().lower()
    if update_mode not in _UPDATE_MODES:
        raise ValueError(f"Unknown order update mode '{settings.order_update_mode}'.")

    set_setting("business_name", settings.business_name.strip())
    set_setting("catalog_policy", CatalogPolicy(settings.catalog_policy).value)
    set_setting("invoice_number_padding", str(max(1, int(settings.invoice_number_padding))))
    set_setting("order_update_mode", update_mode)
    return get_app_settings()
