"""
📦 MODELO DE PEDIDOS - ESTRUCTURA DE ÓRDENES
============================================

Define los pedidos persistidos y sus items. Los borradores que produce el
análisis de mensajes (OrderCard) se convierten en estas filas al guardarse.

Autor: Sistema de Gestión de Pedidos Mágicos
Fecha: 2026-10-19
Versión: 1.0

🛒 TABLA ORDERS:
- Cliente, fecha y estado (pending → completed | cancelled)
- total: suma de precio × cantidad de los items actuales
- amount_paid: suma de los totales de items pagados
- balance: max(0, total - amount_paid)
- metadata: datos libres del borrador (p.ej. lugar de retiro)

🔍 TABLA ORDER_ITEMS:
- Producto y variante opcional
- Precio unitario (snapshot al momento del pedido)
- total = price × quantity, recalculado en cada edición
- is_paid: estado de pago por item

🛡️ VALIDACIONES:
- Totales y precios no negativos
- Cantidades positivas
"""

from datetime import date
from enum import Enum
from sqlalchemy import Column, String, Date, DateTime, Boolean, ForeignKey, Integer, Numeric, JSON
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import CheckConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database.connection import Base
from magic_order.models.client import new_id


class OrderStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)
    date = Column(Date, nullable=False, default=date.today)
    status = Column(SQLEnum(OrderStatus, values_callable=lambda e: [m.value for m in e]),
                    default=OrderStatus.PENDING, nullable=False)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(10, 2), nullable=False, default=0)
    balance = Column(Numeric(10, 2), nullable=False, default=0)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    client = relationship("Client", lazy="joined")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         lazy="selectin", order_by="OrderItem.position")

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_order_total_nonneg"),
        CheckConstraint("amount_paid >= 0 AND balance >= 0", name="ck_order_paid_nonneg"),
        Index("ix_orders_client_date", "client_id", "date"),
    )

    def __repr__(self):
        return f"<Order(id={self.id}, client_id={self.client_id}, total={self.total})>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)
    variant_id = Column(String(36), ForeignKey("product_variants.id", ondelete="SET NULL"), nullable=True)
    position = Column(Integer, nullable=False, default=0)

    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False)   # Precio al momento del pedido
    total = Column(Numeric(10, 2), nullable=False)   # quantity × price
    is_paid = Column(Boolean, nullable=False, default=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="joined")
    variant = relationship("ProductVariant", lazy="joined")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_item_quantity_positive"),
        CheckConstraint("price >= 0 AND total >= 0", name="ck_item_prices_nonneg"),
    )

    @property
    def name(self) -> str:
        return self.product.name if self.product else "Producto"

    @property
    def variant_name(self):
        return self.variant.name if self.variant else None

    def __repr__(self):
        return f"<OrderItem(order_id={self.order_id}, product_id={self.product_id}, quantity={self.quantity})>"
