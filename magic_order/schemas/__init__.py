from magic_order.schemas.draft import (
    CONFIRMADO,
    DUDA,
    UNKNOWN_CLIENT,
    UNKNOWN_PRODUCT,
    DraftItemIn,
    DraftOrderIn,
    MessageAlternative,
    MessageClient,
    MessageItem,
    MessageProduct,
    MessageVariant,
    OrderCard,
)
from magic_order.schemas.api import AnalysisResult

__all__ = [
    "CONFIRMADO",
    "DUDA",
    "UNKNOWN_CLIENT",
    "UNKNOWN_PRODUCT",
    "DraftItemIn",
    "DraftOrderIn",
    "MessageAlternative",
    "MessageClient",
    "MessageItem",
    "MessageProduct",
    "MessageVariant",
    "OrderCard",
    "AnalysisResult",
]
