"""Static product catalog provider"""

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from models import Product

logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    """Raised at construction when the catalog cannot back the engine."""


class Catalog:
    """Ordered, read-only product list with id lookup."""

    def __init__(self, products: Optional[Iterable[Union[Product, dict]]]):
        if products is None:
            raise CatalogError("A product catalog is required")

        self.products: List[Product] = [
            p if isinstance(p, Product) else Product.model_validate(p) for p in products
        ]
        self._by_id: Dict[str, Product] = {}
        for product in self.products:
            if product.id in self._by_id:
                raise CatalogError(f"Duplicate product id in catalog: {product.id}")
            self._by_id[product.id] = product

        logger.info(f"Catalog loaded with {len(self.products)} products")

    def __len__(self) -> int:
        return len(self.products)

    def __iter__(self):
        return iter(self.products)

    def get(self, product_id: Optional[str]) -> Optional[Product]:
        if product_id is None:
            return None
        return self._by_id.get(product_id)

    def in_category(self, category: str) -> List[Product]:
        return [p for p in self.products if p.category == category]

    def by_popularity(self) -> List[Product]:
        """Products ordered by rating x reviews, descending (stable)."""
        return sorted(self.products, key=lambda p: p.rating * p.reviews, reverse=True)

    def search(self, query: str) -> List[Product]:
        """Case-insensitive substring match on name, description and category."""
        q = query.lower()
        return [
            p
            for p in self.products
            if q in p.name.lower() or q in p.description.lower() or q in p.category.lower()
        ]


def load_catalog(path: Union[str, Path]) -> Catalog:
    """Load a catalog from a JSON array of products."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise CatalogError(f"Catalog file {path} must contain a JSON array")
    return Catalog(data)
