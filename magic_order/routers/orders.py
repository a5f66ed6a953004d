"""
📦 ROUTER DE PEDIDOS GUARDADOS
=============================

Vista agrupada por cliente y mutaciones sobre items y pedidos. Cada mutación
devuelve los totales recalculados del pedido; ante un fallo la respuesta es
un error HTTP y el cliente debe revertir su cambio optimista.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from database.connection import get_db
from magic_order.schemas.api import PaidIn, QuantityIn
from magic_order.services.order_service import OrderService

router = APIRouter()
logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "INVALID_QUANTITY": 422,
}


def _unwrap(result: Dict[str, Any]) -> Any:
    """Traduce el dict de resultado del servicio a respuesta o HTTPException."""
    if result.get("success"):
        return result.get("data")
    status_code = _STATUS_BY_CODE.get(result.get("code"), 500)
    detail = {"error": result.get("error"), "code": result.get("code")}
    if "data" in result:
        detail["data"] = result["data"]
    raise HTTPException(status_code=status_code, detail=detail)


@router.get("/clients/{client_id}/summary")
def client_overview(client_id: str, db: Session = Depends(get_db)):
    return _unwrap(OrderService(db).get_client_overview(client_id))


@router.put("/clients/{client_id}/paid")
def toggle_client_paid(client_id: str, data: PaidIn, db: Session = Depends(get_db)):
    return _unwrap(OrderService(db).toggle_client_paid(client_id, data.is_paid))


@router.put("/clients/{client_id}/groups/{base_name}/paid")
def toggle_group_paid(client_id: str, base_name: str, data: PaidIn, db: Session = Depends(get_db)):
    return _unwrap(OrderService(db).toggle_group_paid(client_id, base_name, data.is_paid))


@router.put("/items/{item_id}/paid")
def toggle_item_paid(item_id: str, data: PaidIn, db: Session = Depends(get_db)):
    return _unwrap(OrderService(db).toggle_item_paid(item_id, data.is_paid))


@router.patch("/items/{item_id}/quantity")
def update_item_quantity(item_id: str, data: QuantityIn, db: Session = Depends(get_db)):
    return _unwrap(OrderService(db).update_item_quantity(item_id, data.quantity))


@router.delete("/items/{item_id}")
def delete_item(item_id: str, db: Session = Depends(get_db)):
    return _unwrap(OrderService(db).delete_item(item_id))


@router.delete("/{order_id}")
def delete_order(order_id: str, db: Session = Depends(get_db)):
    return _unwrap(OrderService(db).delete_order(order_id))
