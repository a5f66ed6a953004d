"""
🗂️ ALMACÉN DE BORRADORES POR SESIÓN
==================================

Guarda el estado de un análisis en curso (mensaje, borradores, respuestas de
cada fase, tiempo y el flag de datos reales) para que sobreviva a una recarga
de la página o a un reinicio del servidor.

🔄 CICLO DE VIDA:
1. save_message(): el usuario escribe un mensaje
2. save_analysis(): el análisis termina bien (un análisis cancelado o fallido
   nunca llega aquí, los borradores anteriores quedan intactos)
3. save_orders(): el usuario corrige borradores
4. clear(): mensaje nuevo → se borra todo salvo el flag de datos reales

🛡️ clear() es best-effort: si falla se registra y se sigue adelante.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from magic_order.models.draft_session import DraftSession
from magic_order.schemas.api import AnalysisResult
from magic_order.schemas.draft import OrderCard
from magic_order.utils.decorators import transactional

logger = logging.getLogger(__name__)


class DraftStore:
    def __init__(self, db: Session):
        self.db = db

    def _get(self, session_key: str) -> Optional[DraftSession]:
        return self.db.query(DraftSession).filter(DraftSession.session_key == session_key).first()

    def _get_or_create(self, session_key: str) -> DraftSession:
        row = self._get(session_key)
        if row is None:
            row = DraftSession(session_key=session_key, message_text="", draft_orders_json=[], use_real_data=True)
            self.db.add(row)
        return row

    def load(self, session_key: str) -> Dict[str, Any]:
        row = self._get(session_key)
        if row is None:
            return {
                "message_text": "",
                "orders": [],
                "phase1_response": None,
                "phase2_response": None,
                "phase3_response": None,
                "elapsed_time": None,
                "use_real_data": True,
            }
        return {
            "message_text": row.message_text,
            "orders": list(row.draft_orders_json or []),
            "phase1_response": row.phase1_response,
            "phase2_response": row.phase2_response,
            "phase3_response": row.phase3_response,
            "elapsed_time": row.elapsed_time,
            "use_real_data": row.use_real_data,
        }

    def load_orders(self, session_key: str) -> List[OrderCard]:
        return [OrderCard.model_validate(o) for o in self.load(session_key)["orders"]]

    @transactional
    def save_message(self, session_key: str, message_text: str) -> None:
        self._get_or_create(session_key).message_text = message_text

    @transactional
    def save_analysis(self, session_key: str, message_text: str, analysis: AnalysisResult) -> None:
        row = self._get_or_create(session_key)
        row.message_text = message_text
        row.draft_orders_json = [card.to_json() for card in analysis.result]
        row.phase1_response = analysis.phase1_response
        row.phase2_response = analysis.phase2_response
        row.phase3_response = analysis.phase3_response
        row.elapsed_time = analysis.elapsed_time
        logger.info(f"🗂️ Sesión {session_key}: {len(analysis.result)} borradores guardados")

    @transactional
    def save_orders(self, session_key: str, orders: List[OrderCard]) -> None:
        self.stage_orders(session_key, orders)

    def stage_orders(self, session_key: str, orders: List[OrderCard]) -> None:
        """Como save_orders pero sin commit: lo confirma la transacción de quien llama."""
        # Lista nueva para que SQLAlchemy detecte el cambio en la columna JSON
        self._get_or_create(session_key).draft_orders_json = [card.to_json() for card in orders]
        self.db.flush()

    @transactional
    def set_use_real_data(self, session_key: str, use_real_data: bool) -> None:
        self._get_or_create(session_key).use_real_data = bool(use_real_data)

    def clear(self, session_key: str) -> bool:
        """Borra mensaje, borradores y respuestas; conserva use_real_data."""
        try:
            row = self._get(session_key)
            if row is not None:
                row.message_text = ""
                row.draft_orders_json = []
                row.phase1_response = None
                row.phase2_response = None
                row.phase3_response = None
                row.elapsed_time = None
                self.db.commit()
            logger.info(f"🧹 Sesión {session_key} limpiada")
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"⚠️ No se pudo limpiar la sesión {session_key}: {e}")
            return False
