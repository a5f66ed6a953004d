"""
🗄️ SERVICIO DE CACHÉ - GESTIÓN REDIS
====================================

Interfaz simplificada para Redis. Hoy se usa para cachear respuestas de los
proveedores de IA (mismo modelo + mismo prompt → misma respuesta) y evitar
llamadas repetidas al reanalizar un mensaje.

Autor: Sistema de Caché Redis
Fecha: 2026-10-19
Versión: 1.0

🛡️ ROBUSTEZ:
- Conexión opcional (no bloquea la app si Redis falla)
- Sin Redis, get() devuelve None y setex() no hace nada
- Errores de Redis se registran y nunca se propagan

📝 EJEMPLO DE USO:
    await cache_service.setex("llm:gemini:abc", 3600, "respuesta")
    data = await cache_service.get("llm:gemini:abc")

🔌 INTEGRACIÓN:
- connect() en el lifespan de FastAPI, close() al apagar
- Disponible globalmente como singleton
"""

from __future__ import annotations
import logging
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from config.settings import settings

logger = logging.getLogger(__name__)


class CacheService:
    def __init__(self, url: Optional[str], enabled: bool = True):
        self.url = url
        self.enabled = enabled
        self.redis: Optional[Redis] = None

    async def connect(self):
        if not self.enabled or not self.url:
            logger.warning("⚠️ Redis deshabilitado o sin URL, caché desactivada")
            return
        if self.redis is None:
            self.redis = Redis.from_url(self.url, decode_responses=True)
            try:
                await self.redis.ping()
                logger.info("✅ Conectado a Redis")
            except (RedisError, OSError) as e:
                logger.warning(f"⚠️ No se pudo conectar a Redis: {e}")
                self.redis = None

    async def close(self):
        if self.redis is not None:
            try:
                await self.redis.aclose()
            except (RedisError, OSError) as e:
                logger.debug(f"Error cerrando Redis: {e}")
            self.redis = None

    async def get(self, key: str) -> Optional[str]:
        if not self.redis:
            return None
        try:
            return await self.redis.get(key)
        except (RedisError, OSError) as e:
            logger.warning(f"⚠️ Error leyendo caché {key}: {e}")
            return None

    async def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        if not self.redis:
            return
        try:
            await self.redis.setex(key, ttl_seconds, value)
        except (RedisError, OSError) as e:
            logger.warning(f"⚠️ Error guardando caché {key}: {e}")


cache_service = CacheService(settings.REDIS_URL, settings.REDIS_ENABLED)
