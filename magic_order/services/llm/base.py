"""
🤖 INTERFAZ COMÚN DE PROVEEDORES DE IA
=====================================

Cada proveedor expone exactamente tres operaciones:
- call(prompt): una petición, devuelve el texto generado
- set_model(name) / get_model()

Sin reintentos: un fallo se propaga de inmediato como TransportError o
MalformedResponseError (ver services/errors.py).
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


class ProviderName(str, Enum):
    OPENAI = "openai"
    GOOGLE_GEMINI = "google-gemini"


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    """Recorta texto largo para los logs de diagnóstico."""
    text = text or ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text)} caracteres)"


class LLMProvider(ABC):
    name: ProviderName

    def __init__(self, model: str):
        self._model = model

    @abstractmethod
    async def call(self, prompt: str) -> str:
        ...

    def set_model(self, name: str) -> None:
        if not name or not name.strip():
            raise ValueError("El nombre del modelo no puede estar vacío")
        logger.info(f"🔁 {self.name.value}: modelo {self._model} → {name}")
        self._model = name.strip()

    def get_model(self) -> str:
        return self._model
