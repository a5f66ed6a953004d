"""
🗄️ CONEXIÓN A BASE DE DATOS - CONFIGURACIÓN SQLALCHEMY
======================================================

Configura el engine SQLAlchemy, la fábrica de sesiones y la base declarativa
para los modelos ORM (clientes, productos, variantes, pedidos e items).

Autor: Sistema de Conexión BD
Fecha: 2026-10-19
Versión: 1.0

🏗️ CONFIGURACIÓN DEL POOL (PostgreSQL):
- Pool permanente: 10 conexiones activas
- Overflow: 20 conexiones adicionales bajo demanda
- Pre-ping y recycle cada hora

🔧 SQLITE:
- Usado en desarrollo y tests
- StaticPool para bases en memoria (una sola conexión compartida)

📝 USO CON FASTAPI:
    from database.connection import get_db

    @router.get("/endpoint")
    def endpoint(db: Session = Depends(get_db)):
        ...
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool, StaticPool
from config.settings import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(url: str):
    """Crea el engine adecuado según el tipo de base de datos."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,                    # Número de conexiones permanentes en el pool
        max_overflow=20,                 # Conexiones adicionales cuando el pool está lleno
        pool_pre_ping=True,              # Verificar conexiones antes de usar
        pool_recycle=3600,               # Reciclar conexiones cada hora
        echo=False,
        connect_args={"connect_timeout": 10},
    )


engine = build_engine(settings.DATABASE_URL)

# Crear sesión local
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base para modelos
Base = declarative_base()

# Dependencia para obtener sesión de BD
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
