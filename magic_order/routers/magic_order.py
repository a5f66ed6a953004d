"""
🔮 ROUTER DE PEDIDOS MÁGICOS
===========================

Análisis de mensajes, progreso y cancelación, borradores por sesión,
correcciones manuales, guardado de pedidos y configuración del análisis
(prompt personalizado y proveedor de IA).

⚠️ MAPEO DE ERRORES DEL ANÁLISIS:
- AnalysisCancelled      → 409 {"status": "cancelled"}  (no es un fallo)
- TransportError         → 502 con el cuerpo crudo del proveedor
- MalformedResponseError → 502 con el cuerpo parseado
- JsonRecoveryFailure    → 422 con la respuesta de fase 1 y el texto extraído
"""

import asyncio
import logging
from typing import Callable, List

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from config.settings import settings
from database.connection import get_db
from magic_order.schemas.api import (
    AnalyzeIn,
    ClientSelectionIn,
    ProductSelectionIn,
    PromptIn,
    ProviderIn,
    QuantityIn,
    UseRealDataIn,
    VariantSelectionIn,
)
from magic_order.schemas.draft import OrderCard
from magic_order.services import draft_reconciliation as reconciliation
from magic_order.services.catalog import Catalog, demo_catalog, load_catalog
from magic_order.services.draft_store import DraftStore
from magic_order.services.errors import (
    AnalysisCancelled,
    JsonRecoveryFailure,
    MalformedResponseError,
    MessageAnalysisError,
    PersistenceError,
    PromptTemplateError,
    ReconciliationError,
    TransportError,
)
from magic_order.services.llm.base import LLMProvider
from magic_order.services.llm.factory import ProviderSettingsService, get_provider
from magic_order.services.message_analysis_service import (
    AnalysisConfig,
    AnalysisPhase,
    AnalysisSlotRegistry,
    MessageAnalysisService,
)
from magic_order.services.order_service import OrderService
from magic_order.services.prompts import DEFAULT_ANALYSIS_PROMPT, PromptSettingsService

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)
logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., LLMProvider]


def get_provider_factory() -> ProviderFactory:
    """Dependencia sustituible en tests para no llamar a proveedores reales."""
    return get_provider


def _slots(request: Request) -> AnalysisSlotRegistry:
    return request.app.state.analysis_slots


def _catalog(db: Session, use_real_data: bool) -> Catalog:
    return load_catalog(db) if use_real_data else demo_catalog()


# ==========================================
# CONFIGURACIÓN DEL ANÁLISIS
# ==========================================

@router.get("/prompt")
def get_prompt(db: Session = Depends(get_db)):
    service = PromptSettingsService(db)
    custom = service.get_custom()
    return {"template": custom or DEFAULT_ANALYSIS_PROMPT, "is_custom": custom is not None}


@router.put("/prompt")
def set_prompt(data: PromptIn, db: Session = Depends(get_db)):
    try:
        template = PromptSettingsService(db).set_custom(data.template)
    except PromptTemplateError as e:
        raise HTTPException(status_code=422, detail={"error": str(e), "missing": e.missing})
    return {"template": template, "is_custom": template != DEFAULT_ANALYSIS_PROMPT}


@router.delete("/prompt")
def reset_prompt(db: Session = Depends(get_db)):
    PromptSettingsService(db).reset()
    return {"template": DEFAULT_ANALYSIS_PROMPT, "is_custom": False}


@router.get("/provider")
def get_active_provider(db: Session = Depends(get_db)):
    current = ProviderSettingsService(db).get_current()
    return {"provider": current["provider"].value, "model": current["model"]}


@router.put("/provider")
def set_active_provider(data: ProviderIn, db: Session = Depends(get_db)):
    try:
        current = ProviderSettingsService(db).set_current(data.provider, data.model)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"provider": current["provider"].value, "model": current["model"]}


# ==========================================
# ANÁLISIS
# ==========================================

@router.post("/{session_key}/analyze")
@limiter.limit(settings.ANALYZE_RATE_LIMIT)
async def analyze_message(
    request: Request,
    session_key: str,
    data: AnalyzeIn = Body(...),
    db: Session = Depends(get_db),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
):
    store = DraftStore(db)
    # Las lecturas de SQLAlchemy son síncronas: fuera del event loop para que
    # /cancel y /progress sigan respondiendo durante el análisis
    config = await asyncio.to_thread(_analysis_config, db, store, session_key)

    try:
        provider = provider_factory(config.provider, settings, model=config.model)
    except RuntimeError as e:
        logger.error(f"❌ Proveedor de IA no disponible: {e}")
        raise HTTPException(status_code=503, detail=str(e))

    service = MessageAnalysisService(db, config, provider=provider)
    slots = _slots(request)
    slot = slots.get(session_key)
    token = slot.start()

    try:
        result = await service.analyze(data.message, slot.progress_callback(token), token)
    except AnalysisCancelled:
        slots.finish(session_key, token, AnalysisPhase.CANCELLED)
        return JSONResponse(status_code=409, content={"status": "cancelled"})
    except (TransportError, MalformedResponseError) as e:
        slots.finish(session_key, token, AnalysisPhase.ERRORED)
        raise HTTPException(status_code=502, detail=e.to_dict())
    except JsonRecoveryFailure as e:
        slots.finish(session_key, token, AnalysisPhase.ERRORED)
        raise HTTPException(status_code=422, detail=e.to_dict())
    except MessageAnalysisError as e:
        slots.finish(session_key, token, AnalysisPhase.ERRORED)
        raise HTTPException(status_code=500, detail=e.to_dict())
    slots.finish(session_key, token, AnalysisPhase.DONE)

    try:
        await asyncio.to_thread(store.save_analysis, session_key, data.message, result)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)

    return result.model_dump(by_alias=True, mode="json")


def _analysis_config(db: Session, store: DraftStore, session_key: str) -> AnalysisConfig:
    active = ProviderSettingsService(db).get_current()
    return AnalysisConfig(
        provider=active["provider"],
        model=active["model"],
        prompt_template=PromptSettingsService(db).get_current(),
        use_real_data=store.load(session_key)["use_real_data"],
    )


@router.post("/{session_key}/cancel")
def cancel_analysis(request: Request, session_key: str):
    return {"cancelled": _slots(request).cancel(session_key)}


@router.get("/{session_key}/progress")
def analysis_progress(request: Request, session_key: str):
    return _slots(request).progress(session_key)


# ==========================================
# ESTADO DE LA SESIÓN
# ==========================================

def _state_response(state: dict) -> dict:
    orders = [OrderCard.model_validate(o) for o in state["orders"]]
    return {
        **state,
        "orders": [o.to_json() for o in orders],
        "missing_info": [reconciliation.has_missing_info(o) for o in orders],
    }


@router.get("/{session_key}/state")
def get_state(session_key: str, db: Session = Depends(get_db)):
    return _state_response(DraftStore(db).load(session_key))


@router.delete("/{session_key}/state")
def clear_state(session_key: str, db: Session = Depends(get_db)):
    return {"cleared": DraftStore(db).clear(session_key)}


@router.put("/{session_key}/message")
def save_message(session_key: str, data: AnalyzeIn, db: Session = Depends(get_db)):
    try:
        DraftStore(db).save_message(session_key, data.message)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return {"message_text": data.message}


@router.put("/{session_key}/use-real-data")
def set_use_real_data(session_key: str, data: UseRealDataIn, db: Session = Depends(get_db)):
    try:
        DraftStore(db).set_use_real_data(session_key, data.use_real_data)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return {"use_real_data": data.use_real_data}


# ==========================================
# CORRECCIONES DE BORRADORES
# ==========================================

def _load_draft(store: DraftStore, session_key: str, index: int) -> List[OrderCard]:
    orders = store.load_orders(session_key)
    if not 0 <= index < len(orders):
        raise HTTPException(status_code=404, detail=f"Borrador {index} no encontrado")
    return orders


def _edit_draft(db: Session, session_key: str, index: int, edit: Callable[[OrderCard, Catalog], OrderCard]) -> dict:
    store = DraftStore(db)
    orders = _load_draft(store, session_key, index)
    catalog = _catalog(db, store.load(session_key)["use_real_data"])
    try:
        orders[index] = edit(orders[index], catalog)
    except ReconciliationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    try:
        store.save_orders(session_key, orders)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return {"order": orders[index].to_json(), "missing_info": reconciliation.has_missing_info(orders[index])}


@router.patch("/{session_key}/drafts/{index}/client")
def set_draft_client(session_key: str, index: int, data: ClientSelectionIn, db: Session = Depends(get_db)):
    return _edit_draft(db, session_key, index,
                       lambda order, catalog: reconciliation.set_client(order, catalog, data.client_id))


@router.patch("/{session_key}/drafts/{index}/items/{item_index}/product")
def set_draft_item_product(session_key: str, index: int, item_index: int,
                           data: ProductSelectionIn, db: Session = Depends(get_db)):
    return _edit_draft(db, session_key, index,
                       lambda order, catalog: reconciliation.set_item_product(order, item_index, catalog, data.product_id))


@router.patch("/{session_key}/drafts/{index}/items/{item_index}/variant")
def set_draft_item_variant(session_key: str, index: int, item_index: int,
                           data: VariantSelectionIn, db: Session = Depends(get_db)):
    return _edit_draft(db, session_key, index,
                       lambda order, catalog: reconciliation.set_item_variant(order, item_index, catalog, data.variant_id))


@router.patch("/{session_key}/drafts/{index}/items/{item_index}/quantity")
def set_draft_item_quantity(session_key: str, index: int, item_index: int,
                            data: QuantityIn, db: Session = Depends(get_db)):
    return _edit_draft(db, session_key, index,
                       lambda order, catalog: reconciliation.set_item_quantity(order, item_index, catalog, data.quantity))


@router.delete("/{session_key}/drafts/{index}")
def delete_draft(session_key: str, index: int, db: Session = Depends(get_db)):
    store = DraftStore(db)
    orders = _load_draft(store, session_key, index)
    removed = orders.pop(index)
    try:
        store.save_orders(session_key, orders)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    logger.info(f"🗑️ Borrador de {removed.client.name} descartado")
    return {"remaining": len(orders)}


@router.post("/{session_key}/drafts/{index}/save")
def save_draft(session_key: str, index: int, db: Session = Depends(get_db)):
    store = DraftStore(db)
    orders = _load_draft(store, session_key, index)
    card = orders[index]

    if card.status == "saved":
        raise HTTPException(status_code=409, detail="El borrador ya fue guardado")
    if not store.load(session_key)["use_real_data"]:
        raise HTTPException(status_code=409, detail="Los borradores con datos de demostración no se pueden guardar")
    if reconciliation.has_missing_info(card):
        raise HTTPException(status_code=422, detail=reconciliation.missing_info_reason(card))

    def mark_saved(order):
        # Misma transacción que el pedido: o quedan ambos o ninguno
        orders[index] = card.model_copy(update={"status": "saved"})
        store.stage_orders(session_key, orders)

    try:
        order = OrderService(db).save_draft_order(card, load_catalog(db), on_saved=mark_saved)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)

    return {
        "order_id": order.id,
        "total": float(order.total),
        "amount_paid": float(order.amount_paid),
        "balance": float(order.balance),
        "draft": orders[index].to_json(),
    }
