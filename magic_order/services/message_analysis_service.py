"""
🔮 ANÁLISIS DE MENSAJES - ORQUESTADOR DE TRES FASES
==================================================

Convierte un mensaje en texto libre ("Hola soy Ana, quiero 2 leches y 1 pan")
en borradores de pedido (OrderCard) listos para revisar y guardar.

Autor: Sistema de Análisis de Mensajes con IA
Fecha: 2026-10-19
Versión: 1.1

🔄 FASES:
    idle → preparing → phase1 → phase2 → phase3 → done
                  ↘ cancelled (el usuario detuvo el análisis)
                  ↘ errored   (fallo irrecuperable)

1. PREPARING (10→20%): carga catálogo y clientes (reales o de demo) y arma el prompt
2. PHASE1 (30→60%): una llamada al modelo con la plantilla completa
3. PHASE2 (60→80%): extrae y parsea el array JSON; si falla, UNA llamada de
   reparación (85%) y un segundo intento de parseo; si vuelve a fallar →
   JsonRecoveryFailure
4. PHASE3 (80→100%): validación con defaults (DraftOrderIn), resolución contra
   el catálogo y regla de variantes obligatorias

⛔ CANCELACIÓN:
- CancelToken envuelve un asyncio.Event
- Cada llamada de red compite contra el token; si el token gana, la petición
  en vuelo se cancela y se lanza AnalysisCancelled
- El orquestador nunca escribe el estado del borrador: quien llama guarda el
  resultado solo si el análisis termina bien

🎯 UNA SOLA ESCRITURA POR SESIÓN:
- AnalysisSlot: iniciar un análisis nuevo cancela el anterior en vuelo
- AnalysisSlotRegistry: solo iniciar un análisis crea ranura; progreso y
  cancelación consultan sin crear, y las ranuras resueltas se acotan

🧵 BASE DE DATOS:
- La carga del catálogo (SQLAlchemy síncrono) corre en asyncio.to_thread
  para no bloquear el event loop mientras llegan /cancel y /progress
"""

import asyncio
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from config.settings import settings as default_settings
from magic_order.schemas.api import AnalysisResult
from magic_order.schemas.draft import DUDA, DraftOrderIn, MessageItem, OrderCard
from magic_order.services.catalog import Catalog, demo_catalog, load_catalog
from magic_order.services.draft_reconciliation import apply_variant_rule
from magic_order.services.errors import AnalysisCancelled, JsonRecoveryFailure, MessageAnalysisError
from magic_order.services.llm.base import LLMProvider, ProviderName
from magic_order.services.llm.factory import get_provider, parse_provider_name
from magic_order.services.prompts import DEFAULT_ANALYSIS_PROMPT, build_analysis_prompt, build_repair_prompt
from magic_order.utils.json_utils import extract_json_from_response, try_parse_json

logger = logging.getLogger(__name__)

UNRESOLVED_PRODUCT_NOTE = "Producto no encontrado en el catálogo"


class AnalysisPhase(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    PHASE1 = "phase1"
    PHASE2 = "phase2"
    PHASE3 = "phase3"
    DONE = "done"
    CANCELLED = "cancelled"
    ERRORED = "errored"


ProgressCallback = Callable[[int, AnalysisPhase], Any]


class CancelToken:
    """Señal de cancelación cooperativa, revisada en cada llamada de red."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise AnalysisCancelled()


@dataclass
class AnalysisConfig:
    """Configuración explícita de un análisis (sin estado global)."""
    provider: ProviderName = ProviderName.GOOGLE_GEMINI
    model: Optional[str] = None
    prompt_template: str = DEFAULT_ANALYSIS_PROMPT
    use_real_data: bool = True

    @classmethod
    def from_settings(cls, settings=default_settings, **overrides) -> "AnalysisConfig":
        config = cls(provider=parse_provider_name(settings.LLM_PROVIDER))
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        config.provider = parse_provider_name(config.provider)
        return config


class MessageAnalysisService:
    def __init__(self, db: Session, config: AnalysisConfig,
                 provider: Optional[LLMProvider] = None, settings=default_settings):
        self.db = db
        self.config = config
        self.provider = provider or get_provider(config.provider, settings, model=config.model)
        self.phase = AnalysisPhase.IDLE

    # ==========================================
    # PROGRESO Y CANCELACIÓN
    # ==========================================

    def _report(self, on_progress: Optional[ProgressCallback], percent: int, phase: AnalysisPhase) -> None:
        self.phase = phase
        logger.debug(f"📊 Progreso {percent}% ({phase.value})")
        if on_progress is not None:
            on_progress(percent, phase)

    async def _call(self, prompt: str, cancel_token: Optional[CancelToken]) -> str:
        """Llama al proveedor compitiendo contra el token de cancelación."""
        if cancel_token is None:
            return await self.provider.call(prompt)

        cancel_token.raise_if_cancelled()
        call_task = asyncio.ensure_future(self.provider.call(prompt))
        cancel_task = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait({call_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancel_task.cancel()
            if not call_task.done():
                call_task.cancel()
                try:
                    await call_task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.debug(f"Llamada abortada terminó con error: {e}")

        if cancel_token.cancelled:
            raise AnalysisCancelled()
        return call_task.result()

    # ==========================================
    # FASES
    # ==========================================

    def _load_context(self) -> Catalog:
        if self.config.use_real_data:
            return load_catalog(self.db)
        logger.info("🧪 Usando catálogo de demostración")
        return demo_catalog()

    async def _recover_json(self, phase1_response: str, cancel_token: Optional[CancelToken],
                            on_progress: Optional[ProgressCallback]) -> Tuple[List[Any], str]:
        extracted = extract_json_from_response(phase1_response)
        parsed = try_parse_json(extracted)
        if parsed.success and isinstance(parsed.data, list):
            return parsed.data, extracted

        logger.warning("⚠️ La respuesta no es un array JSON válido, pidiendo reparación")
        self._report(on_progress, 85, AnalysisPhase.PHASE2)
        repair_response = await self._call(build_repair_prompt(extracted), cancel_token)
        repaired = extract_json_from_response(repair_response)
        parsed = try_parse_json(repaired)
        if parsed.success and isinstance(parsed.data, list):
            logger.info("🔧 JSON reparado correctamente")
            return parsed.data, repaired

        raise JsonRecoveryFailure(
            "No se pudo obtener un JSON válido de la respuesta de la IA",
            phase1_response=phase1_response,
            extracted_text=extracted,
            repair_response=repair_response,
        )

    def _resolve_item(self, item: MessageItem, catalog: Catalog) -> MessageItem:
        product = catalog.product(item.product.id)
        if product is None:
            notes = item.notes or UNRESOLVED_PRODUCT_NOTE
            return item.model_copy(update={
                "product": item.product.model_copy(update={"id": None}),
                "variant": None if item.variant is None else item.variant.model_copy(update={"id": None}),
                "status": DUDA,
                "notes": notes,
            })

        update: Dict[str, Any] = {"product": item.product.model_copy(update={"name": product.name})}
        if item.variant is not None:
            variant = product.find_variant(item.variant.id)
            if variant is None:
                update["variant"] = None
            else:
                update["variant"] = item.variant.model_copy(update={"name": variant.name})
        return apply_variant_rule(item.model_copy(update=update), catalog)

    def validate_orders(self, parsed: List[Any], catalog: Catalog) -> List[OrderCard]:
        """Fase 3: defaults del esquema + resolución contra el catálogo."""
        cards = []
        for index, raw in enumerate(parsed):
            if not isinstance(raw, dict):
                logger.warning(f"⚠️ Pedido {index} ignorado: no es un objeto ({type(raw).__name__})")
                continue
            card = DraftOrderIn.model_validate(raw).to_card()

            client = card.client
            if client.id and catalog.client(client.id) is None:
                client = client.model_copy(update={"id": None, "match_confidence": "bajo"})

            items = [self._resolve_item(item, catalog) for item in card.items]
            cards.append(card.model_copy(update={"client": client, "items": items}))
        return cards

    # ==========================================
    # ANÁLISIS COMPLETO
    # ==========================================

    async def analyze(self, message: str, on_progress: Optional[ProgressCallback] = None,
                      cancel_token: Optional[CancelToken] = None) -> AnalysisResult:
        """
        Ejecuta las tres fases sobre el mensaje.

        Raises:
            AnalysisCancelled: el token se activó durante el análisis
            TransportError / MalformedResponseError: fallo del proveedor (sin reintentos)
            JsonRecoveryFailure: ni la reparación produjo un array JSON
            MessageAnalysisError: cualquier otro fallo inesperado
        """
        started = time.monotonic()
        logger.info(f"🔮 Analizando mensaje ({len(message)} caracteres) con {self.provider.name.value}/{self.provider.get_model()}")

        try:
            self._report(on_progress, 10, AnalysisPhase.PREPARING)
            # Consultas síncronas de SQLAlchemy fuera del event loop
            catalog = await asyncio.to_thread(self._load_context)
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            prompt = build_analysis_prompt(self.config.prompt_template, catalog.products, catalog.clients, message)
            self._report(on_progress, 20, AnalysisPhase.PREPARING)

            self._report(on_progress, 30, AnalysisPhase.PHASE1)
            phase1_response = await self._call(prompt, cancel_token)

            self._report(on_progress, 60, AnalysisPhase.PHASE2)
            parsed, phase2_response = await self._recover_json(phase1_response, cancel_token, on_progress)

            self._report(on_progress, 80, AnalysisPhase.PHASE3)
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            cards = self.validate_orders(parsed, catalog)
            phase3_response = json.dumps([c.to_json() for c in cards], ensure_ascii=False, indent=2)
            self._report(on_progress, 100, AnalysisPhase.DONE)

        except AnalysisCancelled:
            self.phase = AnalysisPhase.CANCELLED
            logger.info("⛔ Análisis cancelado por el usuario")
            raise
        except MessageAnalysisError as e:
            self.phase = AnalysisPhase.ERRORED
            logger.error(f"❌ Análisis fallido ({type(e).__name__}): {e.message}")
            raise
        except Exception as e:
            self.phase = AnalysisPhase.ERRORED
            logger.exception("❌ Error inesperado en el análisis")
            raise MessageAnalysisError(f"Error inesperado en el análisis: {e}") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        duda_count = sum(1 for c in cards for i in c.items if i.status == DUDA)
        logger.info(f"✅ Análisis completo: {len(cards)} pedidos, {duda_count} items en duda, {elapsed_ms} ms")
        return AnalysisResult(
            result=cards,
            phase1_response=phase1_response,
            phase2_response=phase2_response,
            phase3_response=phase3_response,
            elapsed_time=elapsed_ms,
        )


# ==========================================
# UN ANÁLISIS EN VUELO POR SESIÓN
# ==========================================

@dataclass
class AnalysisSlot:
    """Ranura de análisis de una sesión; iniciar uno nuevo cancela el anterior."""
    token: Optional[CancelToken] = None
    percent: int = 0
    phase: AnalysisPhase = AnalysisPhase.IDLE

    @property
    def running(self) -> bool:
        return self.phase not in (AnalysisPhase.IDLE, AnalysisPhase.DONE,
                                  AnalysisPhase.CANCELLED, AnalysisPhase.ERRORED)

    @property
    def settled(self) -> bool:
        """Sin ejecución pendiente: se puede descartar sin perder nada."""
        if self.token is None or self.token.cancelled:
            return True
        return self.phase in (AnalysisPhase.DONE, AnalysisPhase.CANCELLED, AnalysisPhase.ERRORED)

    def start(self) -> CancelToken:
        if self.token is not None and not self.token.cancelled:
            if self.running:
                logger.info("⛔ Cancelando análisis anterior en vuelo")
            self.token.cancel()
        self.token = CancelToken()
        self.percent, self.phase = 0, AnalysisPhase.IDLE
        return self.token

    def cancel(self) -> bool:
        if self.token is None or self.token.cancelled or not self.running:
            return False
        self.token.cancel()
        return True

    def progress_callback(self, token: CancelToken) -> ProgressCallback:
        def _update(percent: int, phase: AnalysisPhase) -> None:
            if token is self.token:  # ignora ejecuciones ya reemplazadas
                self.percent, self.phase = percent, phase
        return _update

    def finish(self, token: CancelToken, phase: AnalysisPhase) -> None:
        if token is self.token:
            self.phase = phase

    def snapshot(self) -> dict:
        return {"percent": self.percent, "phase": self.phase.value}


IDLE_SNAPSHOT = {"percent": 0, "phase": AnalysisPhase.IDLE.value}


@dataclass
class AnalysisSlotRegistry:
    """
    Ranuras por sesión. Solo iniciar un análisis crea una; progreso y
    cancelación consultan sin crear. Al terminar se conservan como mucho
    `max_settled` ranuras ya resueltas (las más recientes) para que el
    progreso final siga visible.
    """
    max_settled: int = 256
    slots: "OrderedDict[str, AnalysisSlot]" = field(default_factory=OrderedDict)

    def get(self, session_key: str) -> AnalysisSlot:
        slot = self.slots.get(session_key)
        if slot is None:
            slot = self.slots[session_key] = AnalysisSlot()
        self.slots.move_to_end(session_key)
        return slot

    def peek(self, session_key: str) -> Optional[AnalysisSlot]:
        return self.slots.get(session_key)

    def progress(self, session_key: str) -> dict:
        slot = self.peek(session_key)
        return slot.snapshot() if slot is not None else dict(IDLE_SNAPSHOT)

    def cancel(self, session_key: str) -> bool:
        slot = self.peek(session_key)
        return slot.cancel() if slot is not None else False

    def finish(self, session_key: str, token: CancelToken, phase: AnalysisPhase) -> None:
        slot = self.peek(session_key)
        if slot is not None:
            slot.finish(token, phase)
        self._prune()

    def _prune(self) -> None:
        settled = [key for key, slot in self.slots.items() if slot.settled]
        stale = settled[:max(0, len(settled) - self.max_settled)]
        for key in stale:
            del self.slots[key]
        if stale:
            logger.debug(f"🧹 {len(stale)} ranuras de análisis descartadas, quedan {len(self.slots)}")
