"""In-memory lookup adapters for tests and local development."""

from fulfillment.lookup.port import CatalogPort, DirectoryPort


class FakeDirectory(DirectoryPort):
    """Directory backed by a dict. Unknown identifiers resolve to None."""

    def __init__(self):
        self.companies: dict[str, dict] = {}

    def register_company(self, company_id: str, name: str) -> None:
        self.companies[str(company_id)] = {"id": str(company_id), "name": name}

    def resolve_company(self, company_id: str) -> dict | None:
        return self.companies.get(str(company_id))


class FakeCatalog(CatalogPort):
    """Catalogue backed by a dict. Unknown products resolve to None."""

    def __init__(self):
        self.products: dict[str, dict] = {}

    def register_product(
        self,
        product_id: str,
        name: str,
        sku: str | None = None,
        unit: str | None = None,
        temperature_requirement: dict | None = None,
    ) -> None:
        self.products[str(product_id)] = {
            "id": str(product_id),
            "name": name,
            "sku": sku,
            "unit": unit,
            "temperature_requirement": temperature_requirement,
        }

    def resolve_product(self, product_id: str) -> dict | None:
        product = self.products.get(str(product_id))
        return dict(product) if product else None
