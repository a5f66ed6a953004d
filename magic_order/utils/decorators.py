"""
🔧 DECORADORES DE TRANSACCIONES PARA LOS SERVICIOS
=================================================

Decoradores para manejar transacciones de manera consistente y reducir
código duplicado en OrderService y en el almacén de borradores.

Autor: Sistema de mejoras OrderService
Fecha: 2026-10-19
Versión: 1.1

ANTES (código repetitivo):
    def toggle_item_paid(self, ...):
        try:
            # lógica de negocio
            self.db.commit()
            return resultado
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error: {e}")
            return {"success": False, "error": str(e)}

DESPUÉS (con decorador):
    @db_transaction
    def toggle_item_paid(self, ...):
        # solo lógica de negocio
        return {"success": True, "data": ...}  # commit automático

📋 TRES SABORES:
- @db_transaction: devuelve dict de resultado; el llamador revierte su estado
  optimista cuando success=False
- @read_only: consultas, sin commit
- @transactional(): commit o rollback + PersistenceError (para quien necesita
  una excepción, p.ej. guardar un borrador completo)
"""

import logging
import re
from functools import wraps
from typing import Callable, Any, Dict

from magic_order.services.errors import PersistenceError

logger = logging.getLogger(__name__)

PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


def _mask_sensitive_data(data: Any) -> str:
    """
    🔒 Enmascara datos sensibles en logs para proteger PII

    Args:
        data: Datos a enmascarar (args, kwargs, etc.)

    Returns:
        String seguro para logging sin datos sensibles
    """
    data_str = str(data)

    # Enmascarar números de teléfono (varios formatos)
    phone_patterns = [
        r'\b(\+?[0-9]{1,4}[-.\s]?[0-9]{3}[-.\s]?[0-9]{3}[-.\s]?[0-9]{3,4})\b',
        r"'phone':\s*'([^']+)'",
        r'"phone":\s*"([^"]+)"',
    ]

    for pattern in phone_patterns:
        data_str = re.sub(pattern, lambda m: m.group(0).replace(m.group(1), "***MASKED***"), data_str)

    # Enmascarar otros campos sensibles comunes
    sensitive_fields = ['password', 'token', 'api_key', 'secret']
    for field in sensitive_fields:
        pattern = rf"('{field}'):\s*'([^']+)'"
        data_str = re.sub(pattern, r"\1: '***MASKED***'", data_str, flags=re.IGNORECASE)

    return data_str


def db_transaction(func: Callable) -> Callable:
    """
    🎯 Decorador principal para manejo automático de transacciones

    ✅ QUÉ HACE:
    - Ejecuta la función original
    - Hace commit SOLO si el resultado no indica fallo (success=False)
    - Hace rollback si hay errores o si success=False
    - Convierte excepciones en respuestas estándar con code=PERSISTENCE_ERROR

    🔄 FLUJO:
        1. Ejecuta función original
        2. Si hay error → rollback automático + respuesta de error
        3. Si NO hay error y success=True → commit automático
        4. Si NO hay error y success=False → rollback (validación falló)
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs) -> Dict[str, Any]:
        try:
            result = func(self, *args, **kwargs)

            if isinstance(result, dict) and result.get("success") is False:
                self.db.rollback()
                logger.debug(f"🔄 Rollback por validación fallida en {func.__name__}: {result.get('error', 'Sin detalle')}")
                return result

            self.db.commit()
            logger.debug(f"✅ Transacción exitosa en {func.__name__}")
            return result

        except Exception as e:
            self.db.rollback()
            error_msg = str(e)

            logger.error(f"❌ Error en {func.__name__}: {error_msg}")
            logger.debug(f"   Args: {_mask_sensitive_data(args)}")
            logger.debug(f"   Kwargs: {_mask_sensitive_data(kwargs)}")

            return {
                "success": False,
                "error": error_msg,
                "code": PERSISTENCE_ERROR,
                "method": func.__name__,
                "details": "Error durante operación de base de datos"
            }

    return wrapper


def read_only(func: Callable) -> Callable:
    """
    📖 Decorador para operaciones de solo lectura

    - NO hace commit
    - SÍ hace rollback si hay error (limpia la transacción)
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs) -> Dict[str, Any]:
        try:
            result = func(self, *args, **kwargs)
            logger.debug(f"📖 Consulta exitosa en {func.__name__}")
            return result

        except Exception as e:
            self.db.rollback()
            error_msg = str(e)

            logger.error(f"❌ Error en consulta {func.__name__}: {error_msg}")
            logger.debug(f"   Args: {_mask_sensitive_data(args)}")

            return {
                "success": False,
                "error": error_msg,
                "code": PERSISTENCE_ERROR,
                "method": func.__name__,
                "details": "Error durante consulta de base de datos"
            }

    return wrapper


def transactional(func: Callable) -> Callable:
    """
    💾 Commit al terminar; ante cualquier error rollback y PersistenceError.

    El rollback deshace también las filas ya insertadas en la misma
    transacción (p.ej. el pedido cuyo item falló), así no quedan huérfanas.
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs) -> Any:
        try:
            result = func(self, *args, **kwargs)
            self.db.commit()
            return result
        except PersistenceError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error en {func.__name__}: {e}")
            logger.debug(f"   Args: {_mask_sensitive_data(args)}")
            raise PersistenceError(str(e), operation=func.__name__) from e

    return wrapper
