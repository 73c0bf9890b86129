from __future__ import annotations

import pytest

from scentstudio.data import settings_repository
from scentstudio.models.order_models import AppSettings, CatalogPolicy


def test_defaults_without_stored_values():
    settings = settings_repository.get_app_settings()

    assert settings.business_name == "Atelier Parfum"
    assert settings.catalog_policy == CatalogPolicy.OVERWRITE
    assert settings.invoice_number_padding == 3
    assert settings.order_update_mode == "recreate"


def test_invalid_stored_values_fall_back():
    settings_repository.set_setting("catalog_policy", "merge")
    settings_repository.set_setting("invoice_number_padding", "wide")
    settings_repository.set_setting("order_update_mode", "patch")

    settings = settings_repository.get_app_settings()
    assert settings.catalog_policy == CatalogPolicy.OVERWRITE
    assert settings.invoice_number_padding == 3
    assert settings.order_update_mode == "recreate"


def test_padding_is_clamped():
    settings_repository.set_setting("invoice_number_padding", "40")
    assert settings_repository.get_app_settings().invoice_number_padding == 12


def test_update_app_settings_round_trip():
    saved = settings_repository.update_app_settings(
        AppSettings(
            business_name=" Maison Lune ",
            catalog_policy=CatalogPolicy.VERSION,
            invoice_number_padding=4,
            order_update_mode="IN_PLACE",
        )
    )

    assert saved == AppSettings(
        business_name="Maison Lune",
        catalog_policy=CatalogPolicy.VERSION,
        invoice_number_padding=4,
        order_update_mode="in_place",
    )
    assert settings_repository.get_setting("catalog_policy") == "version"


def test_update_app_settings_rejects_unknown_mode():
    with pytest.raises(ValueError):
        settings_repository.update_app_settings(
            AppSettings(business_name="Maison Lune", order_update_mode="patch")
        )
