"""
🔧 UTILIDADES JSON PARA RESPUESTAS DE IA
=======================================

Los modelos suelen devolver el JSON envuelto en bloques markdown, con comillas
tipográficas o con texto alrededor. Estas utilidades recuperan el array JSON
sin validarlo; el parseo (y su error) es responsabilidad de quien llama.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_FENCE_MARKERS = re.compile(r"```(?:json)?|```")
_ARRAY_OF_OBJECTS = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")


def extract_json_from_response(text: str) -> str:
    """
    Extrae el mejor candidato a array JSON de una respuesta de texto libre.

    Pasos (cada uno cubre el posible fallo del anterior):
    1. Recorta espacios
    2. Si hay bloque ```, toma su contenido; si no cierra, elimina los marcadores
    3. Normaliza comillas tipográficas y colapsa saltos de línea
    4. Si no empieza con [ y termina con ], busca el primer [ {...} ]
    """
    json_text = (text or "").strip()

    if "```" in json_text:
        match = _FENCED_BLOCK.search(json_text)
        if match and match.group(1):
            json_text = match.group(1).strip()
        else:
            json_text = _FENCE_MARKERS.sub("", json_text).strip()

    json_text = (
        json_text
        .replace("‘", "'").replace("’", "'")   # comillas simples curvas
        .replace("“", '"').replace("”", '"')   # comillas dobles curvas
    )
    json_text = re.sub(r"\n+", " ", json_text).strip()

    if not (json_text.startswith("[") and json_text.endswith("]")):
        array_match = _ARRAY_OF_OBJECTS.search(json_text)
        if array_match:
            json_text = array_match.group(0)

    return json_text


@dataclass
class ParseResult:
    success: bool
    data: Any = None
    error: Optional[Exception] = None


def try_parse_json(text: str) -> ParseResult:
    """Intenta parsear texto como JSON sin lanzar excepciones."""
    try:
        return ParseResult(success=True, data=json.loads(text))
    except (json.JSONDecodeError, TypeError) as e:
        logger.debug(f"❌ Error al parsear JSON: {e}")
        return ParseResult(success=False, error=e)
