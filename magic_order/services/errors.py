"""
🚨 TAXONOMÍA DE ERRORES DEL PIPELINE
===================================

Todos los errores del análisis comparten una base (`MessageAnalysisError`)
para que el orquestador y los routers no necesiten manejo por proveedor.

- TransportError: HTTP no-2xx o fallo de red contra el proveedor de IA
- MalformedResponseError: HTTP 2xx pero sin el campo de texto esperado
- JsonRecoveryFailure: ni la reparación logró un array JSON válido
- AnalysisCancelled: parada pedida por el usuario (NO es un fallo)
- PersistenceError: fallo de escritura en la base de datos
"""

from typing import Any, Optional


class MessageAnalysisError(Exception):
    """Error base del análisis de mensajes."""

    def __init__(self, message: str, *, raw_text: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.raw_text = raw_text

    def to_dict(self) -> dict:
        return {"error": self.message, "type": type(self).__name__, "raw": self.raw_text}


class TransportError(MessageAnalysisError):
    def __init__(self, message: str, *, status: Optional[int] = None,
                 status_text: Optional[str] = None, raw_body: Optional[str] = None):
        super().__init__(message, raw_text=raw_body)
        self.status = status
        self.status_text = status_text
        self.raw_body = raw_body

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"status": self.status, "status_text": self.status_text})
        return data


class MalformedResponseError(MessageAnalysisError):
    def __init__(self, message: str, *, body: Any = None, raw_body: Optional[str] = None):
        super().__init__(message, raw_text=raw_body)
        self.body = body

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["body"] = self.body
        return data


class JsonRecoveryFailure(MessageAnalysisError):
    def __init__(self, message: str, *, phase1_response: str, extracted_text: str,
                 repair_response: Optional[str] = None):
        super().__init__(message, raw_text=extracted_text)
        self.phase1_response = phase1_response
        self.extracted_text = extracted_text
        self.repair_response = repair_response

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "phase1_response": self.phase1_response,
            "extracted_text": self.extracted_text,
            "repair_response": self.repair_response,
        })
        return data


class AnalysisCancelled(Exception):
    """El usuario detuvo el análisis. No debe mostrarse como error."""


class PersistenceError(Exception):
    def __init__(self, message: str, *, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation


class PromptTemplateError(ValueError):
    def __init__(self, missing: list):
        super().__init__(f"Faltan marcadores en el prompt: {', '.join(missing)}")
        self.missing = missing


class ReconciliationError(ValueError):
    """Corrección manual inválida sobre un borrador (índice o ID inexistente)."""
