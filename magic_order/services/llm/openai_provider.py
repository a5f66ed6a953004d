"""Proveedor OpenAI (chat completions) con el cliente async oficial."""

import logging
from typing import Any, Optional

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError

from magic_order.services.errors import MalformedResponseError, TransportError
from magic_order.services.llm.base import LLMProvider, ProviderName, preview

logger = logging.getLogger(__name__)


def _dump(resp: Any) -> Any:
    dump = getattr(resp, "model_dump", None)
    return dump() if callable(dump) else repr(resp)


class OpenAIProvider(LLMProvider):
    name = ProviderName.OPENAI

    def __init__(self, api_key: str, model: str, *, temperature: float = 0.2,
                 max_output_tokens: int = 4096, timeout: float = 60,
                 http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(model)
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY no configurada")
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        # 🔧 max_retries=0: una sola petición por llamada
        self.client = AsyncOpenAI(
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def call(self, prompt: str) -> str:
        logger.debug(f"📤 OpenAI [{self._model}] prompt: {preview(prompt)}")
        try:
            resp = await self.client.chat.completions.create(
                model=self._model,
                temperature=self.temperature,
                max_tokens=self.max_output_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except APIStatusError as e:
            raw_body = e.response.text if e.response is not None else str(e.body)
            logger.error(f"❌ OpenAI respondió {e.status_code}: {preview(raw_body)}")
            raise TransportError(
                f"Error en la API de OpenAI: {e.status_code}",
                status=e.status_code,
                status_text=e.response.reason_phrase if e.response is not None else None,
                raw_body=raw_body,
            ) from e
        except (APIConnectionError, APITimeoutError) as e:
            logger.error(f"❌ Error de conexión con OpenAI: {e}")
            raise TransportError(f"No se pudo conectar con OpenAI: {e}") from e

        choices = getattr(resp, "choices", None) or []
        content = None
        if choices:
            message = getattr(choices[0], "message", None)
            content = getattr(message, "content", None)
        if not content:
            body = _dump(resp)
            logger.error("❌ Respuesta de OpenAI sin contenido de texto")
            raise MalformedResponseError("Formato de respuesta inesperado de OpenAI", body=body, raw_body=str(body))

        logger.debug(f"📥 OpenAI respuesta: {preview(content)}")
        return content
