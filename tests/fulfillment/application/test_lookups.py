"""Tests for the directory and catalogue lookup adapters."""

import pytest
from fulfillment.lookup import get_catalog, get_directory, reset_lookups
from fulfillment.lookup.fake_adapter import FakeCatalog, FakeDirectory


class TestAdapterSelection:
    def test_fake_adapters_by_default(self):
        assert isinstance(get_directory(), FakeDirectory)
        assert isinstance(get_catalog(), FakeCatalog)

    def test_adapters_are_singletons(self):
        assert get_catalog() is get_catalog()

    def test_reset_builds_new_adapters(self):
        catalog = get_catalog()
        reset_lookups()
        assert get_catalog() is not catalog

    def test_unknown_directory_adapter(self, monkeypatch):
        monkeypatch.setenv("DIRECTORY_ADAPTER", "ldap")
        reset_lookups()
        with pytest.raises(ValueError) as exc:
            get_directory()
        assert "Unknown directory adapter" in str(exc.value)

    def test_unknown_catalog_adapter(self, monkeypatch):
        monkeypatch.setenv("CATALOG_ADAPTER", "erp")
        reset_lookups()
        with pytest.raises(ValueError):
            get_catalog()


class TestFakeAdapters:
    def test_unknown_company_resolves_to_none(self, directory):
        assert directory.resolve_company("nobody") is None

    def test_registered_company(self, directory):
        directory.register_company("buyer-001", "St. Mary Hospital")
        assert directory.resolve_company("buyer-001") == {"id": "buyer-001", "name": "St. Mary Hospital"}

    def test_registered_product(self, catalog):
        catalog.register_product("prod-1", "Flu vaccine", sku="VAX-01", unit="vial")
        product = catalog.resolve_product("prod-1")
        assert product["sku"] == "VAX-01"
        assert product["temperature_requirement"] is None

    def test_resolved_product_is_a_copy(self, catalog):
        catalog.register_product("prod-1", "Flu vaccine")
        catalog.resolve_product("prod-1")["name"] = "Changed"
        assert catalog.resolve_product("prod-1")["name"] == "Flu vaccine"
