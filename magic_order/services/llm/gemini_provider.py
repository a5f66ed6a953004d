"""
🔷 PROVEEDOR GOOGLE GEMINI (REST generateContent)
================================================

Envoltura de respuesta esperada:
    {"candidates": [{"content": {"parts": [{"text": "..."}]}, "finishReason": "STOP"}]}

Un candidato bloqueado por seguridad (finishReason SAFETY) o sin texto se
trata como respuesta malformada.
"""

import logging
from typing import Any, Optional

import httpx

from magic_order.services.errors import MalformedResponseError, TransportError
from magic_order.services.llm.base import LLMProvider, ProviderName, preview

logger = logging.getLogger(__name__)


def extract_candidate_text(body: Any) -> Optional[str]:
    """Texto de candidates[0].content.parts[0].text, o None."""
    if not isinstance(body, dict):
        return None
    candidates = body.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    candidate = candidates[0] if isinstance(candidates[0], dict) else {}
    if candidate.get("finishReason") == "SAFETY":
        return None
    parts = (candidate.get("content") or {}).get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    return text if isinstance(text, str) and text else None


class GeminiProvider(LLMProvider):
    name = ProviderName.GOOGLE_GEMINI

    def __init__(self, api_key: str, model: str, *, endpoint: str,
                 temperature: float = 0.2, max_output_tokens: int = 4096,
                 timeout: float = 60, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(model)
        if not api_key:
            raise RuntimeError("GOOGLE_API_KEY no configurada")
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout
        self._http_client = http_client

    def _url(self) -> str:
        return f"{self.endpoint}/{self._model}:generateContent"

    def _payload(self, prompt: str) -> dict:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

    async def _post(self, client: httpx.AsyncClient, prompt: str) -> httpx.Response:
        return await client.post(
            self._url(),
            json=self._payload(prompt),
            headers={"x-goog-api-key": self.api_key},
            timeout=self.timeout,
        )

    async def call(self, prompt: str) -> str:
        logger.debug(f"📤 Gemini [{self._model}] prompt: {preview(prompt)}")
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, prompt)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, prompt)
        except httpx.HTTPError as e:
            logger.error(f"❌ Error de red con Gemini: {e}")
            raise TransportError(f"No se pudo conectar con Gemini: {e}") from e

        raw_body = response.text
        if not response.is_success:
            logger.error(f"❌ Gemini respondió {response.status_code}: {preview(raw_body)}")
            raise TransportError(
                f"Error en la API de Gemini: {response.status_code}",
                status=response.status_code,
                status_text=response.reason_phrase,
                raw_body=raw_body,
            )

        try:
            body = response.json()
        except ValueError:
            body = None

        text = extract_candidate_text(body)
        if text is None:
            logger.error(f"❌ Respuesta de Gemini sin texto: {preview(raw_body)}")
            raise MalformedResponseError(
                "Formato de respuesta inesperado de Gemini",
                body=body if body is not None else raw_body,
                raw_body=raw_body,
            )

        logger.debug(f"📥 Gemini respuesta: {preview(text)}")
        return text
