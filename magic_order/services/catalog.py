"""
📚 CONTEXTO DE CATÁLOGO Y CLIENTES
=================================

Vista inmutable del catálogo (productos con variantes) y de los clientes que
usan el análisis de mensajes y las correcciones manuales de borradores.

Autor: Sistema de Catálogo de Productos
Fecha: 2026-10-19
Versión: 1.0

🔧 ORIGEN DE DATOS:
- load_catalog(db) / load_clients(db): datos reales de la base
- demo_catalog() / demo_clients(): datos sintéticos para probar el análisis
  sin tocar el catálogo real (flag "use_real_data" de la sesión)
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from magic_order.models.client import Client
from magic_order.models.product import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogVariant:
    id: str
    name: str
    price: Decimal = Decimal("0")


@dataclass(frozen=True)
class CatalogProduct:
    id: str
    name: str
    price: Decimal = Decimal("0")
    variants: Tuple[CatalogVariant, ...] = field(default_factory=tuple)

    @property
    def has_variants(self) -> bool:
        return len(self.variants) > 0

    def find_variant(self, variant_id: Optional[str]) -> Optional[CatalogVariant]:
        if not variant_id:
            return None
        return next((v for v in self.variants if v.id == variant_id), None)


@dataclass(frozen=True)
class CatalogClient:
    id: str
    name: str
    phone: Optional[str] = None


class Catalog:
    """Índices por ID sobre productos, variantes y clientes."""

    def __init__(self, products: Iterable[CatalogProduct], clients: Iterable[CatalogClient] = ()):
        self.products: List[CatalogProduct] = list(products)
        self.clients: List[CatalogClient] = list(clients)
        self._products: Dict[str, CatalogProduct] = {p.id: p for p in self.products}
        self._clients: Dict[str, CatalogClient] = {c.id: c for c in self.clients}
        self._variant_owner: Dict[str, CatalogProduct] = {
            v.id: p for p in self.products for v in p.variants
        }

    def product(self, product_id: Optional[str]) -> Optional[CatalogProduct]:
        return self._products.get(product_id) if product_id else None

    def client(self, client_id: Optional[str]) -> Optional[CatalogClient]:
        return self._clients.get(client_id) if client_id else None

    def variant_owner(self, variant_id: Optional[str]) -> Optional[CatalogProduct]:
        return self._variant_owner.get(variant_id) if variant_id else None


def product_from_orm(product: Product) -> CatalogProduct:
    return CatalogProduct(
        id=product.id,
        name=product.name,
        price=Decimal(product.price or 0),
        variants=tuple(
            CatalogVariant(id=v.id, name=v.name, price=Decimal(v.price or 0))
            for v in product.variants
        ),
    )


def load_catalog(db: Session) -> Catalog:
    """Catálogo y clientes reales, ordenados por nombre."""
    products = db.query(Product).order_by(Product.name.asc()).all()
    clients = db.query(Client).order_by(Client.name.asc()).all()
    logger.info(f"📚 Contexto cargado: {len(products)} productos, {len(clients)} clientes")
    return Catalog(
        [product_from_orm(p) for p in products],
        [CatalogClient(id=c.id, name=c.name, phone=c.phone) for c in clients],
    )


def demo_catalog() -> Catalog:
    products = [
        CatalogProduct("demo-p-leche", "Leche", Decimal("1.20")),
        CatalogProduct("demo-p-pan", "Pan", Decimal("1.50")),
        CatalogProduct("demo-p-queso", "Queso fresco", Decimal("6.80")),
        CatalogProduct(
            "demo-p-panales", "Pañales", Decimal("12.00"),
            (
                CatalogVariant("demo-v-panales-1", "Talla 1", Decimal("11.50")),
                CatalogVariant("demo-v-panales-2", "Talla 2", Decimal("12.00")),
                CatalogVariant("demo-v-panales-3", "Talla 3", Decimal("12.50")),
            ),
        ),
        CatalogProduct(
            "demo-p-yogur", "Yogur", Decimal("0.90"),
            (
                CatalogVariant("demo-v-yogur-fresa", "Fresa", Decimal("0.90")),
                CatalogVariant("demo-v-yogur-natural", "Natural", Decimal("0.85")),
            ),
        ),
    ]
    clients = [
        CatalogClient("demo-c-ana", "Ana"),
        CatalogClient("demo-c-maria", "María López", "+34 600 111 222"),
        CatalogClient("demo-c-juan", "Juan Pérez"),
    ]
    return Catalog(products, clients)
