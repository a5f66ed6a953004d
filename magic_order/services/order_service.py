"""
📦 ORDER SERVICE - PEDIDOS PERSISTIDOS Y SUS MUTACIONES
======================================================

Convierte borradores confirmados en pedidos y aplica las ediciones del
usuario sobre pedidos guardados, manteniendo los totales consistentes.

Autor: Sistema de Gestión de Pedidos Mágicos
Fecha: 2026-10-19
Versión: 1.1

🏗️ ARQUITECTURA:
- Decoradores de transacciones (@db_transaction, @read_only, @transactional)
- Respuestas estandarizadas {"success": bool, ...} en las mutaciones, para
  que quien llama revierta su cambio optimista cuando success=False
- Manejo automático de commit/rollback

📊 FUNCIONES PRINCIPALES:

🔍 CONSULTAS (@read_only):
- get_client_overview(): pedidos del cliente, grupos por producto y totales

✏️ MUTACIONES (@db_transaction):
- toggle_item_paid(): marca un item como pagado / no pagado
- update_item_quantity(): nueva cantidad, recalcula total del item
- delete_item(), delete_order()

🔁 MUTACIONES EN LOTE (una transacción por item, en secuencia):
- toggle_group_paid(): todos los items de un grupo de producto
- toggle_client_paid(): todos los items del cliente
  Un fallo a mitad deja un estado mixto; el resultado indica qué items
  se actualizaron y cuáles fallaron.

💾 GUARDADO DE BORRADORES (@transactional):
- save_draft_order(): OrderCard completo → Order + OrderItems; si falla
  cualquier insert (o la escritura on_saved que marca el borrador) se
  revierte todo y se lanza PersistenceError

💰 INVARIANTES DEL PEDIDO (tras cualquier mutación):
- item.total = price × quantity
- order.total = Σ item.total
- order.amount_paid = Σ item.total de items pagados
- order.balance = max(0, total - amount_paid)
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

# 🎯 Decoradores para manejo automático de transacciones
from magic_order.utils.decorators import db_transaction, read_only, transactional

from magic_order.models.client import Client
from magic_order.models.order import Order, OrderItem, OrderStatus
from magic_order.schemas.draft import OrderCard
from magic_order.services.catalog import Catalog
from magic_order.services.draft_reconciliation import has_missing_info, missing_info_reason
from magic_order.services.errors import PersistenceError
from magic_order.services.order_aggregation import client_summary, find_group, group_client_items

logger = logging.getLogger(__name__)


class OrderService:
    """Servicio para pedidos persistidos: guardado, pagos, cantidades y borrado"""

    def __init__(self, db: Session):
        self.db = db

    def _money(self, amount) -> Decimal:
        """Redondea cantidades monetarias a 2 decimales"""
        return Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def _recalculate_order(self, order: Order) -> Order:
        """
        Recalcula total, pagado y saldo del pedido desde sus items actuales

        Args:
            order: Pedido a recalcular (con items cargados)

        Returns:
            El mismo pedido con total, amount_paid y balance actualizados
        """
        self.db.flush()
        self.db.expire(order, ["items"])  # recarga items insertados o borrados

        total = Decimal("0")
        paid = Decimal("0")
        for item in order.items:
            item.total = self._money(Decimal(item.price) * item.quantity)
            total += item.total
            if item.is_paid:
                paid += item.total

        order.total = self._money(total)
        order.amount_paid = self._money(paid)
        order.balance = max(Decimal("0.00"), order.total - order.amount_paid)
        return order

    def _order_summary(self, order: Order) -> Dict[str, Any]:
        return {
            "id": order.id,
            "client_id": order.client_id,
            "total": float(order.total),
            "amount_paid": float(order.amount_paid),
            "balance": float(order.balance),
        }

    def _item_data(self, item: OrderItem) -> Dict[str, Any]:
        return {
            "id": item.id,
            "order_id": item.order_id,
            "product_id": item.product_id,
            "name": item.name,
            "variant_id": item.variant_id,
            "variant": item.variant_name,
            "quantity": item.quantity,
            "price": float(item.price),
            "total": float(item.total),
            "is_paid": item.is_paid,
        }

    def _client_orders(self, client_id: str) -> List[Order]:
        return (self.db.query(Order)
                .filter(Order.client_id == client_id)
                .order_by(Order.date.asc(), Order.created_at.asc())
                .all())

    # ==========================================
    # CONSULTAS
    # ==========================================

    @read_only
    def get_client_overview(self, client_id: str) -> Dict[str, Any]:
        """
        Vista agrupada de todos los pedidos de un cliente

        Returns:
            Dict con cliente, grupos por producto base y totales sumados desde los items
        """
        client = self.db.get(Client, client_id)
        if not client:
            return {"success": False, "error": f"Cliente {client_id} no encontrado", "code": "NOT_FOUND"}

        orders = self._client_orders(client_id)
        summary = client_summary(orders)
        return {
            "success": True,
            "data": {
                "client": {"id": client.id, "name": client.name, "phone": client.phone},
                "total": float(summary["total"]),
                "paid": float(summary["paid"]),
                "balance": float(summary["balance"]),
                "groups": [group.to_dict() for group in group_client_items(orders)],
                "orders": [
                    {
                        **self._order_summary(order),
                        "date": order.date.isoformat() if order.date else None,
                        "status": order.status.value,
                        "items": [self._item_data(item) for item in order.items],
                    }
                    for order in orders
                ],
            },
        }

    # ==========================================
    # MUTACIONES POR ITEM
    # ==========================================

    @db_transaction
    def toggle_item_paid(self, item_id: str, is_paid: bool) -> Dict[str, Any]:
        """
        Marca un item como pagado o pendiente y recalcula su pedido

        🔧 DECORATOR: @db_transaction
        - Commit si success=True, rollback en cualquier otro caso
        """
        item = self.db.get(OrderItem, item_id)
        if not item:
            return {"success": False, "error": f"Item {item_id} no encontrado", "code": "NOT_FOUND"}

        item.is_paid = bool(is_paid)
        order = self._recalculate_order(item.order)
        logger.info(f"💳 Item {item_id} {'pagado' if is_paid else 'pendiente'}")
        return {"success": True, "data": {"item": self._item_data(item), "order": self._order_summary(order)}}

    @db_transaction
    def update_item_quantity(self, item_id: str, quantity: int) -> Dict[str, Any]:
        """
        Cambia la cantidad de un item; su total y el del pedido se recalculan

        Args:
            item_id: ID del item
            quantity: Nueva cantidad (entero positivo)
        """
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            return {"success": False, "error": "La cantidad debe ser un entero positivo", "code": "INVALID_QUANTITY"}

        item = self.db.get(OrderItem, item_id)
        if not item:
            return {"success": False, "error": f"Item {item_id} no encontrado", "code": "NOT_FOUND"}

        item.quantity = quantity
        order = self._recalculate_order(item.order)
        logger.info(f"✏️ Item {item_id}: cantidad {quantity}")
        return {"success": True, "data": {"item": self._item_data(item), "order": self._order_summary(order)}}

    @db_transaction
    def delete_item(self, item_id: str) -> Dict[str, Any]:
        item = self.db.get(OrderItem, item_id)
        if not item:
            return {"success": False, "error": f"Item {item_id} no encontrado", "code": "NOT_FOUND"}

        order = item.order
        order.items.remove(item)  # delete-orphan
        order = self._recalculate_order(order)
        logger.info(f"🗑️ Item {item_id} eliminado del pedido {order.id}")
        return {"success": True, "data": {"order": self._order_summary(order)}}

    @db_transaction
    def delete_order(self, order_id: str) -> Dict[str, Any]:
        order = self.db.get(Order, order_id)
        if not order:
            return {"success": False, "error": f"Pedido {order_id} no encontrado", "code": "NOT_FOUND"}

        self.db.delete(order)
        logger.info(f"🗑️ Pedido {order_id} eliminado")
        return {"success": True, "data": {"order_id": order_id}}

    # ==========================================
    # MUTACIONES EN LOTE (SECUENCIALES)
    # ==========================================

    def _toggle_items(self, item_ids: List[str], is_paid: bool) -> Dict[str, Any]:
        updated, failed = [], []
        for item_id in item_ids:
            result = self.toggle_item_paid(item_id, is_paid)
            if result.get("success"):
                updated.append(item_id)
            else:
                failed.append({"item_id": item_id, "error": result.get("error")})

        if failed:
            logger.warning(f"⚠️ Pago en lote incompleto: {len(updated)} ok, {len(failed)} fallidos")
            return {
                "success": False,
                "error": f"No se pudieron actualizar {len(failed)} items",
                "code": "PERSISTENCE_ERROR",
                "data": {"updated": updated, "failed": failed},
            }
        return {"success": True, "data": {"updated": updated, "failed": []}}

    def toggle_group_paid(self, client_id: str, base_name: str, is_paid: bool) -> Dict[str, Any]:
        """
        Marca como pagados (o no) todos los items de un grupo de producto

        Cada item se actualiza en su propia transacción, en secuencia.
        """
        group = find_group(self._client_orders(client_id), base_name)
        if group is None:
            return {"success": False, "error": f"Grupo {base_name} no encontrado", "code": "NOT_FOUND"}
        return self._toggle_items([item.id for item in group.items], is_paid)

    def toggle_client_paid(self, client_id: str, is_paid: bool) -> Dict[str, Any]:
        """Marca como pagados (o no) todos los items de todos los pedidos del cliente"""
        item_ids = [item.id for order in self._client_orders(client_id) for item in order.items]
        return self._toggle_items(item_ids, is_paid)

    # ==========================================
    # GUARDADO DE BORRADORES
    # ==========================================

    @transactional
    def save_draft_order(self, card: OrderCard, catalog: Catalog,
                         on_saved: Optional[Callable[[Order], None]] = None) -> Order:
        """
        Convierte un borrador completo en Order + OrderItems

        Args:
            card: Borrador sin información faltante
            catalog: Catálogo contra el que se resuelven precios
            on_saved: Escritura adicional que debe confirmarse en la MISMA
                transacción (p.ej. marcar el borrador como guardado)

        Returns:
            Pedido guardado con totales calculados

        Raises:
            PersistenceError: borrador incompleto o fallo de base de datos
                (rollback completo, sin pedidos huérfanos)
        """
        if has_missing_info(card):
            raise PersistenceError(
                f"El pedido tiene información pendiente: {missing_info_reason(card)}",
                operation="save_draft_order",
            )

        order = Order(
            client_id=card.client.id,
            status=OrderStatus.PENDING,
            meta={"pickup_location": card.pickup_location} if card.pickup_location else {},
        )
        self.db.add(order)
        self.db.flush()  # Para obtener el ID

        for position, draft_item in enumerate(card.items):
            product = catalog.product(draft_item.product.id)
            if product is None:
                raise PersistenceError(f"Producto {draft_item.product.id} no encontrado", operation="save_draft_order")
            variant = product.find_variant(draft_item.variant.id if draft_item.variant else None)
            price = self._money(variant.price if variant and variant.price else product.price)

            self.db.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                variant_id=variant.id if variant else None,
                position=position,
                quantity=draft_item.quantity,
                price=price,
                total=self._money(price * draft_item.quantity),
                is_paid=card.is_paid,
            ))

        self._recalculate_order(order)
        if on_saved is not None:
            on_saved(order)
        logger.info(f"💾 Pedido {order.id} guardado: {len(card.items)} items, total {order.total}")
        return order
