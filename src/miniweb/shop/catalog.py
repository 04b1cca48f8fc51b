"""
Product catalog backed by a JSON file.

The file is a list of objects with at least `id`, `nombre`, `precio` and
`categoria`. It is read once when the catalog is created; the storefront
never writes it.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import json
import logging

logger = logging.getLogger(__name__)

Product = Dict[str, Any]

SORT_ORDERS = ("precio_asc", "precio_desc")


@dataclass
class Page:
    total: int
    pagina: int
    limite: int
    productos: List[Product]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "pagina": self.pagina,
            "limite": self.limite,
            "productos": self.productos,
        }


class Catalog:

    def __init__(self, products: List[Product]):
        self._products = list(products)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Catalog":
        with open(path, encoding="utf-8") as f:
            products = json.load(f)
        if not isinstance(products, list):
            raise ValueError(f"{path}: expected a JSON list of products")
        logger.info(f"Loaded {len(products)} products from {path}")
        return cls(products)

    def all(self) -> List[Product]:
        return list(self._products)

    def get(self, product_id: Any) -> Optional[Product]:
        """Find by id, comparing as strings so "3" and 3 are the same product."""
        wanted = str(product_id)
        for product in self._products:
            if str(product.get("id")) == wanted:
                return product
        return None

    def categories(self) -> List[str]:
        seen: List[str] = []
        for product in self._products:
            category = product.get("categoria")
            if category and category not in seen:
                seen.append(category)
        return seen

    def search(
        self,
        categoria: Optional[str] = None,
        min_precio: Optional[float] = None,
        max_precio: Optional[float] = None,
        ordenar: Optional[str] = None,
    ) -> List[Product]:
        results = self._products
        if categoria:
            results = [p for p in results if p.get("categoria") == categoria]
        if min_precio is not None:
            results = [p for p in results if p.get("precio", 0) >= min_precio]
        if max_precio is not None:
            results = [p for p in results if p.get("precio", 0) <= max_precio]
        if ordenar in SORT_ORDERS:
            results = sorted(
                results,
                key=lambda p: p.get("precio", 0),
                reverse=ordenar == "precio_desc",
            )
        return list(results)

    def __len__(self) -> int:
        return len(self._products)


def paginate(items: List[Product], pagina: int = 1, limite: int = 10) -> Page:
    """Slice `items` into 1-based pages; out-of-range pages are empty."""
    pagina = max(pagina, 1)
    limite = max(limite, 1)
    start = (pagina - 1) * limite
    return Page(
        total=len(items),
        pagina=pagina,
        limite=limite,
        productos=items[start:start + limite],
    )


def parse_number(value: Optional[str]) -> Optional[float]:
    """Float from a query value; empty or unreadable values give None."""
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_int(value: Optional[str], default: int) -> int:
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default
