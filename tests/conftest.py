# tests/conftest.py
import asyncio
import os

# Entorno de test antes de importar settings / engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_ENABLED"] = "False"
os.environ["LLM_CACHE_TTL"] = "0"
os.environ["LLM_PROVIDER"] = "google-gemini"
os.environ["GOOGLE_API_KEY"] = "test-google-key"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["ANALYZE_RATE_LIMIT"] = "1000/minute"
os.environ["DEBUG"] = "True"

from types import SimpleNamespace

import pytest

from database.connection import Base, SessionLocal, engine
from database.init_db import populate_catalog
from magic_order.models import Client, Product
from magic_order.services.catalog import load_catalog
from magic_order.services.llm.base import LLMProvider, ProviderName


class FakeProvider(LLMProvider):
    """Proveedor de IA en memoria: devuelve (o lanza) las respuestas en orden."""

    name = ProviderName.GOOGLE_GEMINI

    def __init__(self, *responses, delay: float = 0):
        super().__init__("fake-model")
        self.responses = list(responses)
        self.prompts = []
        self.delay = delay
        self.aborted = False

    async def call(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.aborted = True
                raise
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture
def fake_provider():
    """Fábrica de FakeProvider para cada test."""
    return FakeProvider


@pytest.fixture
def db():
    """Sesión sobre sqlite en memoria con todas las tablas creadas."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seeded(db):
    """Catálogo de ejemplo (Leche, Pan, Pañales con tallas, Yogur...) y clientes."""
    populate_catalog(db)
    products = {p.name: p for p in db.query(Product).all()}
    clients = {c.name: c for c in db.query(Client).all()}

    def variant(product_name, variant_name):
        return next(v for v in products[product_name].variants if v.name == variant_name)

    return SimpleNamespace(
        products=products,
        clients=clients,
        variant=variant,
        catalog=load_catalog(db),
    )
