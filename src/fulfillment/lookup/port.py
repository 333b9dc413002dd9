"""Lookup ports — read-only interfaces to the account directory and the catalogue.

Both collaborators live outside this bounded context. Their answers are
snapshotted onto the order at creation time, so later changes in the
directory or catalogue never alter an existing order.
"""

from abc import ABC, abstractmethod


class DirectoryPort(ABC):
    """Abstract interface for the account/company directory."""

    @abstractmethod
    def resolve_company(self, company_id: str) -> dict | None:
        """Resolve a buyer or supplier identifier.

        Returns:
            dict with keys: id, name, or None when the identifier is unknown
        """
        ...


class CatalogPort(ABC):
    """Abstract interface for the product catalogue."""

    @abstractmethod
    def resolve_product(self, product_id: str) -> dict | None:
        """Resolve a product identifier.

        Returns:
            dict with keys: id, name, sku, unit, temperature_requirement
            (dict with min_value, max_value, unit, or None),
            or None when the product is unknown
        """
        ...
