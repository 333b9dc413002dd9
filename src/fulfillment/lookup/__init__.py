"""Lookup adapters — pluggable account directory and catalogue integrations."""

import os

_directory_instance = None
_catalog_instance = None


def get_directory():
    """Return the configured directory adapter (singleton).

    Uses FakeDirectory by default. Configure via the DIRECTORY_ADAPTER
    environment variable.
    """
    global _directory_instance
    if _directory_instance is None:
        adapter = os.environ.get("DIRECTORY_ADAPTER", "fake")
        if adapter == "fake":
            from fulfillment.lookup.fake_adapter import FakeDirectory

            _directory_instance = FakeDirectory()
        else:
            raise ValueError(f"Unknown directory adapter: {adapter}")
    return _directory_instance


def get_catalog():
    """Return the configured catalogue adapter (singleton).

    Uses FakeCatalog by default. Configure via the CATALOG_ADAPTER
    environment variable.
    """
    global _catalog_instance
    if _catalog_instance is None:
        adapter = os.environ.get("CATALOG_ADAPTER", "fake")
        if adapter == "fake":
            from fulfillment.lookup.fake_adapter import FakeCatalog

            _catalog_instance = FakeCatalog()
        else:
            raise ValueError(f"Unknown catalog adapter: {adapter}")
    return _catalog_instance


def reset_lookups():
    """Reset the adapter singletons (useful for testing)."""
    global _directory_instance, _catalog_instance
    _directory_instance = None
    _catalog_instance = None
