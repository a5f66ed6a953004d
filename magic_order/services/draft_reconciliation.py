"""
🧩 CORRECCIONES MANUALES DE BORRADORES
=====================================

Funciones puras sobre un OrderCard: cada una aplica una corrección del
usuario y devuelve un borrador NUEVO con el status recalculado. El borrador
recibido nunca se modifica.

🔍 REGLA GENERAL DE STATUS (por item):
- "duda" si el producto no está resuelto en el catálogo
- "duda" si el producto tiene variantes y no hay una variante válida
- "duda" si la cantidad no es positiva
- "confirmado" en cualquier otro caso

📋 OPERACIONES:
- set_client(): cliente elegido a mano → matchConfidence "alto"
- set_item_product(): cambia producto; si tiene variantes pregunta cuál
- set_item_variant(): fija variante (si pertenece a otro producto, cambia el producto)
- set_item_quantity(): fija cantidad
- has_missing_info(): ¿el borrador aún no puede guardarse?
"""

import logging
from typing import Optional

from magic_order.schemas.draft import CONFIRMADO, DUDA, MessageItem, MessageVariant, OrderCard
from magic_order.services.catalog import Catalog
from magic_order.services.errors import ReconciliationError

logger = logging.getLogger(__name__)

VARIANT_QUESTION = "¿Qué variante de {product}?"
EMPTY_ORDER_REASON = "El pedido no tiene productos"


def variant_question(product_name: str) -> str:
    return VARIANT_QUESTION.format(product=product_name)


def _is_variant_question(note: str) -> bool:
    return note.startswith("¿Qué variante de ") and note.endswith("?")


def _without_variant_question(notes: str) -> str:
    parts = [p.strip() for p in (notes or "").split(". ") if p.strip()]
    return ". ".join(p for p in parts if not _is_variant_question(p))


def _with_note(notes: str, note: str) -> str:
    if note in (notes or ""):
        return notes
    return f"{notes}. {note}" if notes else note


def missing_variant(item: MessageItem, catalog: Catalog) -> bool:
    product = catalog.product(item.product.id)
    if product is None or not product.has_variants:
        return False
    variant_id = item.variant.id if item.variant else None
    return product.find_variant(variant_id) is None


def item_status(item: MessageItem, catalog: Catalog) -> str:
    if catalog.product(item.product.id) is None:
        return DUDA
    if item.quantity is None or item.quantity <= 0:
        return DUDA
    if missing_variant(item, catalog):
        return DUDA
    return CONFIRMADO


def apply_variant_rule(item: MessageItem, catalog: Catalog) -> MessageItem:
    """
    Fuerza "duda" cuando el producto tiene variantes y falta la variante,
    sin importar lo que haya decidido el modelo.
    """
    if not missing_variant(item, catalog):
        return item
    product = catalog.product(item.product.id)
    return item.model_copy(update={
        "status": DUDA,
        "notes": _with_note(item.notes, variant_question(product.name)),
    })


def _checked_index(order: OrderCard, item_index: int) -> int:
    if not 0 <= item_index < len(order.items):
        raise ReconciliationError(f"Item {item_index} fuera de rango (hay {len(order.items)})")
    return item_index


def _replace_item(order: OrderCard, item_index: int, item: MessageItem) -> OrderCard:
    items = list(order.items)
    items[item_index] = item
    return order.model_copy(update={"items": items})


def set_client(order: OrderCard, catalog: Catalog, client_id: str) -> OrderCard:
    client = catalog.client(client_id)
    if client is None:
        raise ReconciliationError(f"Cliente {client_id} no encontrado")
    resolved = order.client.model_copy(update={
        "id": client.id,
        "name": client.name,
        "match_confidence": "alto",
    })
    return order.model_copy(update={"client": resolved})


def set_item_product(order: OrderCard, item_index: int, catalog: Catalog, product_id: str) -> OrderCard:
    idx = _checked_index(order, item_index)
    product = catalog.product(product_id)
    if product is None:
        raise ReconciliationError(f"Producto {product_id} no encontrado")

    item = order.items[idx]
    variant = item.variant
    if variant is not None and product.find_variant(variant.id) is None:
        variant = None  # la variante anterior era de otro producto

    updated = item.model_copy(update={
        "product": item.product.model_copy(update={"id": product.id, "name": product.name}),
        "variant": variant,
    })
    notes = _without_variant_question(item.notes)
    if missing_variant(updated, catalog):
        notes = _with_note(notes, variant_question(product.name))
    updated = updated.model_copy(update={"notes": notes, "status": item_status(updated, catalog)})
    return _replace_item(order, idx, updated)


def set_item_variant(order: OrderCard, item_index: int, catalog: Catalog, variant_id: str) -> OrderCard:
    """
    Fija la variante del item. Si la variante pertenece a otro producto,
    el item pasa a ese producto.

    El status se recalcula con la regla general: una cantidad no positiva
    sigue en "duda" aunque la variante quede resuelta.
    """
    idx = _checked_index(order, item_index)
    item = order.items[idx]

    product = catalog.product(item.product.id)
    variant = product.find_variant(variant_id) if product else None
    if variant is None:
        product = catalog.variant_owner(variant_id)
        variant = product.find_variant(variant_id) if product else None
    if variant is None:
        raise ReconciliationError(f"Variante {variant_id} no encontrada")

    updated = item.model_copy(update={
        "product": item.product.model_copy(update={"id": product.id, "name": product.name}),
        "variant": MessageVariant(id=variant.id, name=variant.name),
        "notes": _without_variant_question(item.notes),
    })
    updated = updated.model_copy(update={"status": item_status(updated, catalog)})
    return _replace_item(order, idx, updated)


def set_item_quantity(order: OrderCard, item_index: int, catalog: Catalog, quantity: int) -> OrderCard:
    idx = _checked_index(order, item_index)
    updated = order.items[idx].model_copy(update={"quantity": int(quantity)})
    updated = updated.model_copy(update={"status": item_status(updated, catalog)})
    return _replace_item(order, idx, updated)


def has_missing_info(order: OrderCard) -> bool:
    """True si el borrador aún no puede guardarse (incluye borradores sin items)."""
    if not order.client.id or not order.items:
        return True
    for item in order.items:
        if not item.product.id or item.status == DUDA:
            return True
        if item.quantity is None or item.quantity <= 0:
            return True
    return False


def missing_info_reason(order: OrderCard) -> Optional[str]:
    if not order.client.id:
        return "Cliente no identificado"
    if not order.items:
        return EMPTY_ORDER_REASON
    for item in order.items:
        if not item.product.id:
            return f"Producto sin identificar: {item.product.name}"
        if item.quantity is None or item.quantity <= 0:
            return f"Cantidad inválida para {item.product.name}"
        if item.status == DUDA:
            return item.notes or "Requiere confirmación"
    return None
