"""
📊 AGRUPACIÓN DE ITEMS POR CLIENTE Y PRODUCTO BASE
=================================================

Vista derivada (nunca persistida) de los pedidos de un cliente: los items de
todos sus pedidos se agrupan por "nombre base" del producto, quitando el
sufijo de variante ("Pañales Talla 3" → "Pañales"), y dentro de cada grupo
se fusionan las filas con la misma variante.

🔍 SUFIJOS RECONOCIDOS (el primero que coincide gana):
1. Talla/Talle <x>          "Pañales Talla 3", "Body Talle M"
2. Letras de talla          XS, S, M, L, XL, XXL
3. Tamaños en palabras      Grande, Mediano, Pequeño
4. Letra suelta             G, M, P
5. Peso/medida numérica     500, 500g, 1kg, 16oz, 1.5L

💰 TOTALES DEL CLIENTE:
- Se suman desde los items, no desde Order.total
- paid = Σ totales de items pagados
- balance = max(0, total - paid)
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional

_SUFFIX_PATTERNS = [
    re.compile(r"^(.+?)\s+(?:talla|talle)\s+\S+$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+(?:XXL|XL|XS|S|M|L)$"),
    re.compile(r"^(.+?)\s+(?:grande|mediano|pequeño)$", re.IGNORECASE),
    re.compile(r"^(.+?)\s+[GMP]$"),
    re.compile(r"^(.+?)\s+\d+(?:[.,]\d+)?\s*(?:kg|g|gr|mg|l|ml|cc|oz|u|unidades)?$", re.IGNORECASE),
]


def money(amount) -> Decimal:
    return Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def base_product_name(name: str) -> str:
    name = (name or "").strip()
    for pattern in _SUFFIX_PATTERNS:
        match = pattern.match(name)
        if match:
            return match.group(1).strip()
    return name


@dataclass
class VariantRow:
    label: str
    price: Decimal
    quantity: int = 0
    total: Decimal = Decimal("0.00")
    is_paid: bool = True
    items: List = field(default_factory=list)

    @property
    def item_ids(self) -> List[str]:
        return [item.id for item in self.items]

    def merge(self, item) -> None:
        self.items.append(item)
        self.quantity += item.quantity
        self.total = money(self.price * self.quantity)
        self.is_paid = self.is_paid and bool(item.is_paid)


@dataclass
class ProductGroup:
    base_name: str
    rows: List[VariantRow] = field(default_factory=list)

    @property
    def quantity(self) -> int:
        return sum(row.quantity for row in self.rows)

    @property
    def total(self) -> Decimal:
        return money(sum((row.total for row in self.rows), Decimal("0")))

    @property
    def is_paid(self) -> bool:
        return bool(self.rows) and all(row.is_paid for row in self.rows)

    @property
    def items(self) -> List:
        return [item for row in self.rows for item in row.items]

    def to_dict(self) -> dict:
        return {
            "base_name": self.base_name,
            "quantity": self.quantity,
            "total": float(self.total),
            "is_paid": self.is_paid,
            "variants": [
                {
                    "label": row.label,
                    "price": float(row.price),
                    "quantity": row.quantity,
                    "total": float(row.total),
                    "is_paid": row.is_paid,
                    "item_ids": row.item_ids,
                }
                for row in self.rows
            ],
        }


def _variant_label(item, base_name: str) -> str:
    """Variante real si existe; si no, el sufijo quitado o el propio nombre base."""
    variant = getattr(item, "variant_name", None)
    if variant:
        return variant
    suffix = item.name[len(base_name):].strip() if item.name.startswith(base_name) else ""
    return suffix or base_name


def group_client_items(orders: Iterable) -> List[ProductGroup]:
    """Agrupa los items de todos los pedidos por nombre base, en orden de aparición."""
    groups: Dict[str, ProductGroup] = {}
    rows: Dict[tuple, VariantRow] = {}

    for order in orders:
        for item in order.items:
            base_name = base_product_name(item.name)
            label = _variant_label(item, base_name)

            group = groups.get(base_name)
            if group is None:
                group = groups[base_name] = ProductGroup(base_name)

            row = rows.get((base_name, label))
            if row is None:
                row = rows[(base_name, label)] = VariantRow(label=label, price=money(item.price))
                group.rows.append(row)
            row.merge(item)

    return list(groups.values())


def find_group(orders: Iterable, base_name: str) -> Optional[ProductGroup]:
    return next((g for g in group_client_items(orders) if g.base_name == base_name), None)


def client_summary(orders: Iterable) -> Dict[str, Decimal]:
    total = Decimal("0")
    paid = Decimal("0")
    for order in orders:
        for item in order.items:
            item_total = Decimal(item.price) * item.quantity
            total += item_total
            if item.is_paid:
                paid += item_total
    total, paid = money(total), money(paid)
    return {"total": total, "paid": paid, "balance": max(Decimal("0.00"), total - paid)}
