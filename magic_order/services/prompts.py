"""
📝 PROMPTS DE ANÁLISIS DE MENSAJES
=================================

Plantillas e instrucciones para el análisis de pedidos en texto libre y la
reparación de JSON. La plantilla de análisis admite una versión personalizada
que se guarda en la tabla app_settings y se lee en cada análisis.

🔧 MARCADORES OBLIGATORIOS:
- {productsContext}: catálogo serializado
- {clientsContext}: clientes serializados
- {messageText}: mensaje a analizar
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from magic_order.models.app_setting import AppSetting
from magic_order.services.errors import PromptTemplateError

logger = logging.getLogger(__name__)

PRODUCTS_PLACEHOLDER = "{productsContext}"
CLIENTS_PLACEHOLDER = "{clientsContext}"
MESSAGE_PLACEHOLDER = "{messageText}"
REQUIRED_PLACEHOLDERS = (PRODUCTS_PLACEHOLDER, CLIENTS_PLACEHOLDER, MESSAGE_PLACEHOLDER)

ANALYSIS_PROMPT_KEY = "analysis_prompt"

DEFAULT_ANALYSIS_PROMPT = """Analiza el siguiente mensaje y detecta los pedidos que se solicitan. El mensaje puede ser informal y contener múltiples pedidos de diferentes clientes.

CONTEXTO (productos y clientes existentes en la base de datos):

PRODUCTOS:
{productsContext}

CLIENTES:
{clientsContext}

MENSAJE A ANALIZAR:
"{messageText}"

INSTRUCCIONES IMPORTANTES:
1. Separa los pedidos por cliente. Si un mismo cliente hace varios pedidos, agrúpalos en una sola entrada.
2. Identifica el cliente de cada pedido usando la lista de CLIENTES. Si coincide exactamente usa matchConfidence "alto".
3. Detecta productos, variantes y cantidades. Por ejemplo, "3M" es 3 pañales talle M.
4. Si el producto o variante NO está en el catálogo, marca el ítem con status "duda" y explica en "notes".
5. Si el producto tiene variantes y no se indica cuál, marca el ítem con status "duda".
6. NO inventes datos: si no puedes identificar un cliente o producto, deja su ID en null.
7. Presta atención a mensajes informales, abreviaciones y mezclas de información.

Devuelve ÚNICAMENTE un array JSON válido, sin explicaciones ni markdown, con esta estructura exacta:

[
  {
    "client": {
      "id": "ID del cliente o null",
      "name": "Nombre del cliente",
      "matchConfidence": "alto|medio|bajo"
    },
    "items": [
      {
        "product": {
          "id": "ID del producto o null",
          "name": "Nombre de producto identificado"
        },
        "quantity": 1,
        "variant": {
          "id": "ID de la variante o null",
          "name": "Nombre de la variante"
        },
        "status": "confirmado|duda",
        "alternatives": [],
        "notes": "Notas o dudas específicas de este ítem"
      }
    ],
    "pickupLocation": "Lugar de retiro si se menciona, o null"
  }
]"""

JSON_REPAIR_PROMPT = """Convierte el siguiente texto roto en un array JSON válido que cumpla con la estructura esperada:

TEXTO A CORREGIR:
{jsonText}

INSTRUCCIONES IMPORTANTES:
1. Corrige la sintaxis: comillas faltantes, comas, llaves o corchetes mal cerrados.
2. Los IDs pueden ser string o null; las cantidades ("quantity") deben ser números.
3. El "matchConfidence" debe ser uno de: "alto", "medio", "bajo".
4. El "status" debe ser uno de: "confirmado", "duda".
5. NO cambies la estructura ni agregues datos nuevos.
6. El resultado DEBE ser un array que comience con [ y termine con ].

Devuelve EXCLUSIVAMENTE el JSON corregido, sin explicaciones ni marcadores adicionales."""


def _attr(obj, name, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def format_products_context(products: Iterable) -> str:
    """Una línea por producto con sus variantes (acepta ORM o dicts)."""
    lines = []
    for p in products:
        variants = _attr(p, "variants") or []
        if variants:
            variants_text = "Variantes: " + ", ".join(
                f"{_attr(v, 'name')} (ID: {_attr(v, 'id')})" for v in variants
            )
        else:
            variants_text = "Sin variantes"
        lines.append(f"Producto: {_attr(p, 'name')} (ID: {_attr(p, 'id')}). {variants_text}")
    return "\n".join(lines)


def format_clients_context(clients: Iterable) -> str:
    lines = []
    for c in clients:
        phone = _attr(c, "phone")
        line = f"Cliente: {_attr(c, 'name')} (ID: {_attr(c, 'id')})"
        if phone:
            line += f", Teléfono: {phone}"
        lines.append(line)
    return "\n".join(lines)


def missing_placeholders(template: str) -> List[str]:
    return [p for p in REQUIRED_PLACEHOLDERS if p not in (template or "")]


def validate_template(template: str) -> str:
    missing = missing_placeholders(template)
    if missing:
        raise PromptTemplateError(missing)
    return template


def build_analysis_prompt(template: str, products: Iterable, clients: Iterable, message: str) -> str:
    """Sustitución literal (primera aparición) de cada marcador."""
    return (
        template
        .replace(PRODUCTS_PLACEHOLDER, format_products_context(products), 1)
        .replace(CLIENTS_PLACEHOLDER, format_clients_context(clients), 1)
        .replace(MESSAGE_PLACEHOLDER, message, 1)
    )


def build_repair_prompt(json_text: str) -> str:
    return JSON_REPAIR_PROMPT.replace("{jsonText}", json_text, 1)


class PromptSettingsService:
    """Lee y guarda la plantilla personalizada de análisis."""

    def __init__(self, db: Session):
        self.db = db

    def get_custom(self) -> Optional[str]:
        row = self.db.get(AppSetting, ANALYSIS_PROMPT_KEY)
        return row.value if row else None

    def get_current(self) -> str:
        return self.get_custom() or DEFAULT_ANALYSIS_PROMPT

    def set_custom(self, template: Optional[str]) -> str:
        """
        Guarda una plantilla personalizada.

        Una plantilla vacía restablece la predeterminada. Lanza
        PromptTemplateError si falta algún marcador obligatorio.
        """
        if not template or not template.strip():
            self.reset()
            return DEFAULT_ANALYSIS_PROMPT

        validate_template(template)
        row = self.db.get(AppSetting, ANALYSIS_PROMPT_KEY)
        if row:
            row.value = template
        else:
            self.db.add(AppSetting(key=ANALYSIS_PROMPT_KEY, value=template))
        self.db.commit()
        logger.info("📝 Prompt de análisis personalizado guardado")
        return template

    def reset(self) -> None:
        row = self.db.get(AppSetting, ANALYSIS_PROMPT_KEY)
        if row:
            self.db.delete(row)
            self.db.commit()
            logger.info("📝 Prompt de análisis restablecido al predeterminado")
