from .client import Client
from .product import Product, ProductVariant
from .order import Order, OrderItem, OrderStatus
from .draft_session import DraftSession
from .app_setting import AppSetting

__all__ = [
    "Client",
    "Product", "ProductVariant",
    "Order", "OrderItem", "OrderStatus",
    "DraftSession",
    "AppSetting",
]
