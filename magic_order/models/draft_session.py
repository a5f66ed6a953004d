from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from database.connection import Base


class DraftSession(Base):
    """Estado durable de un análisis en curso (sobrevive a recargas de página)."""
    __tablename__ = "draft_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_key = Column(String(64), nullable=False, unique=True)  # unique ya crea índice

    message_text = Column(Text, nullable=False, default="")
    draft_orders_json = Column(JSON, nullable=False, default=list)
    phase1_response = Column(Text, nullable=True)
    phase2_response = Column(Text, nullable=True)
    phase3_response = Column(Text, nullable=True)
    elapsed_time = Column(Integer, nullable=True)  # milisegundos
    use_real_data = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<DraftSession(session_key='{self.session_key}', orders={len(self.draft_orders_json or [])})>"
