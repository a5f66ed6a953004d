"""Cuerpos de petición y respuestas de los routers."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from magic_order.schemas.draft import OrderCard


class AnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    result: List[OrderCard] = Field(default_factory=list)
    phase1_response: str = Field("", alias="phase1Response")
    phase2_response: str = Field("", alias="phase2Response")
    phase3_response: str = Field("", alias="phase3Response")
    elapsed_time: int = Field(0, alias="elapsedTime")  # milisegundos


class AnalyzeIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=10000)

    @field_validator("message")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("El mensaje no puede estar vacío")
        return v


class ClientSelectionIn(BaseModel):
    client_id: str = Field(..., min_length=1)


class ProductSelectionIn(BaseModel):
    product_id: str = Field(..., min_length=1)


class VariantSelectionIn(BaseModel):
    variant_id: str = Field(..., min_length=1)


class QuantityIn(BaseModel):
    quantity: int


class PaidIn(BaseModel):
    is_paid: bool


class UseRealDataIn(BaseModel):
    use_real_data: bool


class PromptIn(BaseModel):
    template: Optional[str] = None


class ProviderIn(BaseModel):
    provider: str
    model: Optional[str] = None
