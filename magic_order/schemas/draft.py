"""
🧾 ESQUEMAS DE BORRADORES DE PEDIDO
==================================

Modelos pydantic para los pedidos que salen del análisis de mensajes.

🎯 DOS NIVELES:
- MessageClient / MessageItem / OrderCard: forma canónica del borrador,
  lo que se guarda en la sesión y lo que la UI edita.
- DraftOrderIn / DraftItemIn: entrada tolerante que acepta lo que devuelva
  el modelo de IA y aplica todas las políticas por defecto en un solo lugar.

🛡️ POLÍTICAS POR DEFECTO:
- Cliente ausente → {id: None, name: "Cliente desconocido", matchConfidence: "bajo"}
- Producto ausente → {id: None, name: "Producto desconocido"}
- Cantidad ausente, no entera o no positiva → 1, status "duda" y nota explicativa
- Status fuera de {confirmado, duda} → "duda"
- Notas siempre string

Las claves JSON se mantienen en camelCase (matchConfidence, isPaid,
pickupLocation) porque es el contrato con el prompt y con la UI.
"""

import math
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_CLIENT = "Cliente desconocido"
UNKNOWN_PRODUCT = "Producto desconocido"
DEFAULTED_QUANTITY_NOTE = "Cantidad no especificada, se asumió 1"

CONFIRMADO = "confirmado"
DUDA = "duda"
ITEM_STATUSES = (CONFIRMADO, DUDA)
MATCH_CONFIDENCES = ("alto", "medio", "bajo")

ItemStatus = Literal["confirmado", "duda"]
MatchConfidence = Literal["alto", "medio", "bajo"]


def normalize_id(value: Any) -> Optional[str]:
    """IDs como string; null, vacío o 'null' significan sin resolver."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "undefined"):
        return None
    return text


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


class _DraftModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MessageProduct(_DraftModel):
    id: Optional[str] = None
    name: str = UNKNOWN_PRODUCT

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return normalize_id(v)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        return _text(v, UNKNOWN_PRODUCT)


class MessageVariant(_DraftModel):
    id: Optional[str] = None
    name: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return normalize_id(v)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        return _text(v)


class MessageAlternative(_DraftModel):
    id: Optional[str] = None
    name: str = ""
    type: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return normalize_id(v)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        return _text(v)


class MessageClient(_DraftModel):
    id: Optional[str] = None
    name: str = UNKNOWN_CLIENT
    match_confidence: MatchConfidence = Field("bajo", alias="matchConfidence")

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return normalize_id(v)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        return _text(v, UNKNOWN_CLIENT)

    @field_validator("match_confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        value = _text(v).lower()
        return value if value in MATCH_CONFIDENCES else "bajo"


class MessageItem(_DraftModel):
    product: MessageProduct = Field(default_factory=MessageProduct)
    variant: Optional[MessageVariant] = None
    quantity: int = 1
    status: ItemStatus = DUDA
    notes: str = ""
    alternatives: List[MessageAlternative] = Field(default_factory=list)


class OrderCard(_DraftModel):
    client: MessageClient = Field(default_factory=MessageClient)
    items: List[MessageItem] = Field(default_factory=list)
    is_paid: bool = Field(False, alias="isPaid")
    status: Literal["pending", "saved"] = "pending"
    pickup_location: Optional[str] = Field(None, alias="pickupLocation")

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ==========================================
# ENTRADA TOLERANTE (SALIDA CRUDA DEL MODELO)
# ==========================================

class DraftItemIn(_DraftModel):
    """Item tal como lo devuelve la IA; `to_item()` aplica los defaults."""

    product: MessageProduct = Field(default_factory=MessageProduct)
    variant: Optional[MessageVariant] = None
    quantity: Any = None
    status: Any = None
    notes: Any = None
    alternatives: List[MessageAlternative] = Field(default_factory=list)

    @field_validator("product", mode="before")
    @classmethod
    def _product(cls, v):
        if isinstance(v, str):
            return {"id": None, "name": v}
        return v if isinstance(v, dict) else {}

    @field_validator("variant", mode="before")
    @classmethod
    def _variant(cls, v):
        if isinstance(v, str):
            v = {"id": None, "name": v}
        if not isinstance(v, dict):
            return None
        if normalize_id(v.get("id")) is None and not _text(v.get("name")):
            return None
        return v

    @field_validator("alternatives", mode="before")
    @classmethod
    def _alternatives(cls, v):
        if not isinstance(v, list):
            return []
        return [a for a in v if isinstance(a, dict)]

    def parsed_quantity(self) -> Optional[int]:
        """Cantidad entera positiva o None si falta o no es válida (2.5 no es válida)."""
        value = self.quantity
        if isinstance(value, bool) or value is None:
            return None
        try:
            number = float(str(value).strip().replace(",", "."))
        except ValueError:
            return None
        if not math.isfinite(number) or number < 1 or not number.is_integer():
            return None
        return int(number)

    def to_item(self) -> MessageItem:
        notes = _text(self.notes)
        status = _text(self.status).lower()
        if status not in ITEM_STATUSES:
            status = DUDA

        quantity = self.parsed_quantity()
        if quantity is None:
            quantity = 1
            status = DUDA
            notes = f"{notes}. {DEFAULTED_QUANTITY_NOTE}" if notes else DEFAULTED_QUANTITY_NOTE

        return MessageItem(
            product=self.product,
            variant=self.variant,
            quantity=quantity,
            status=status,
            notes=notes,
            alternatives=self.alternatives,
        )


class DraftOrderIn(_DraftModel):
    """Pedido tal como lo devuelve la IA; `to_card()` aplica los defaults."""

    client: MessageClient = Field(default_factory=MessageClient)
    items: List[DraftItemIn] = Field(default_factory=list)
    pickup_location: Optional[str] = Field(None, alias="pickupLocation")

    @field_validator("client", mode="before")
    @classmethod
    def _client(cls, v):
        if isinstance(v, str):
            return {"id": None, "name": v}
        return v if isinstance(v, dict) else {}

    @field_validator("items", mode="before")
    @classmethod
    def _items(cls, v):
        if not isinstance(v, list):
            return []
        return [item if isinstance(item, dict) else {} for item in v]

    @field_validator("pickup_location", mode="before")
    @classmethod
    def _pickup(cls, v):
        text = _text(v)
        if not text or text.lower() in ("null", "none"):
            return None
        return text

    def to_card(self) -> OrderCard:
        return OrderCard(
            client=self.client,
            items=[item.to_item() for item in self.items],
            pickup_location=self.pickup_location,
        )
