"""
🏭 FÁBRICA DE PROVEEDORES DE IA
==============================

`get_provider()` construye el proveedor indicado por `ProviderName`, con los
parámetros de generación de settings. Si LLM_CACHE_TTL > 0 lo envuelve con
`CachingProvider`, que guarda en Redis la respuesta por modelo + prompt.

El proveedor activo y su modelo se guardan en app_settings mediante
`ProviderSettingsService`; no hay estado global mutable en este módulo.
"""

import hashlib
import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from config.settings import settings as default_settings
from magic_order.models.app_setting import AppSetting
from magic_order.services.cache_service import CacheService, cache_service
from magic_order.services.llm.base import LLMProvider, ProviderName
from magic_order.services.llm.gemini_provider import GeminiProvider
from magic_order.services.llm.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_KEY = "llm_provider"
MODEL_KEY = "llm_model"


def parse_provider_name(name) -> ProviderName:
    if isinstance(name, ProviderName):
        return name
    try:
        return ProviderName((name or "").strip().lower())
    except ValueError:
        valid = ", ".join(p.value for p in ProviderName)
        raise ValueError(f"Proveedor de IA desconocido: {name!r} (válidos: {valid})")


def default_model(name: ProviderName, settings=default_settings) -> str:
    if name is ProviderName.OPENAI:
        return settings.OPENAI_MODEL
    return settings.GEMINI_MODEL


class CachingProvider(LLMProvider):
    """Cachea en Redis las respuestas del proveedor envuelto."""

    def __init__(self, inner: LLMProvider, cache: CacheService, ttl_seconds: int):
        self.inner = inner
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.name = inner.name

    def _key(self, prompt: str) -> str:
        digest = hashlib.sha1(prompt.encode("utf-8")).hexdigest()
        return f"llm:{self.name.value}:{self.inner.get_model()}:{digest}"

    async def call(self, prompt: str) -> str:
        key = self._key(prompt)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.info(f"⚡ Respuesta de IA desde caché ({self.inner.get_model()})")
            return cached
        text = await self.inner.call(prompt)
        await self.cache.setex(key, self.ttl_seconds, text)
        return text

    def set_model(self, name: str) -> None:
        self.inner.set_model(name)

    def get_model(self) -> str:
        return self.inner.get_model()


def get_provider(name, settings=default_settings, *, model: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 cache: Optional[CacheService] = None) -> LLMProvider:
    provider_name = parse_provider_name(name)
    model = model or default_model(provider_name, settings)

    if provider_name is ProviderName.OPENAI:
        provider: LLMProvider = OpenAIProvider(
            settings.OPENAI_API_KEY,
            model,
            temperature=settings.LLM_TEMPERATURE,
            max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
            timeout=settings.LLM_TIMEOUT,
            http_client=http_client,
        )
    else:
        provider = GeminiProvider(
            settings.GOOGLE_API_KEY,
            model,
            endpoint=settings.GEMINI_ENDPOINT,
            temperature=settings.LLM_TEMPERATURE,
            max_output_tokens=settings.LLM_MAX_OUTPUT_TOKENS,
            timeout=settings.LLM_TIMEOUT,
            http_client=http_client,
        )

    if settings.LLM_CACHE_TTL > 0:
        return CachingProvider(provider, cache or cache_service, settings.LLM_CACHE_TTL)
    return provider


class ProviderSettingsService:
    """Proveedor y modelo activos, persistidos en app_settings."""

    def __init__(self, db: Session, settings=default_settings):
        self.db = db
        self.settings = settings

    def _get(self, key: str) -> Optional[str]:
        row = self.db.get(AppSetting, key)
        return row.value if row else None

    def _set(self, key: str, value: str) -> None:
        row = self.db.get(AppSetting, key)
        if row:
            row.value = value
        else:
            self.db.add(AppSetting(key=key, value=value))

    def get_current(self) -> dict:
        provider = parse_provider_name(self._get(PROVIDER_KEY) or self.settings.LLM_PROVIDER)
        model = self._get(MODEL_KEY) or default_model(provider, self.settings)
        return {"provider": provider, "model": model}

    def set_current(self, provider, model: Optional[str] = None) -> dict:
        provider_name = parse_provider_name(provider)
        model = (model or "").strip() or default_model(provider_name, self.settings)
        self._set(PROVIDER_KEY, provider_name.value)
        self._set(MODEL_KEY, model)
        self.db.commit()
        logger.info(f"🤖 Proveedor de IA activo: {provider_name.value} ({model})")
        return {"provider": provider_name, "model": model}
