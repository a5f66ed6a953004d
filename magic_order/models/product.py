from sqlalchemy import Column, String, Text, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from database.connection import Base
from magic_order.models.client import new_id


# Modelo de producto del catálogo
class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False, index=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProductVariant.name",
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
    )

    def __repr__(self):
        return f"<Product(name='{self.name}', price={self.price})>"


# Variante de producto (talla, tamaño, sabor...)
class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(String(36), primary_key=True, default=new_id)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_variant_price_nonneg"),
    )

    def __repr__(self):
        return f"<ProductVariant(product_id='{self.product_id}', name='{self.name}')>"
