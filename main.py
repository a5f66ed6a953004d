import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config.settings import settings
from magic_order.routers import magic_order, orders
from magic_order.services.cache_service import cache_service
from magic_order.services.message_analysis_service import AnalysisSlotRegistry

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Conectar a Redis al iniciar la aplicación (caché de respuestas de IA)
    await cache_service.connect()
    yield
    # shutdown
    await cache_service.close()


app = FastAPI(
    title="Magic Order API",
    description="API para convertir mensajes de clientes en pedidos con IA",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)

# Configurar rate limiting (el análisis llama a proveedores de IA de pago)
app.state.limiter = magic_order.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Un análisis en vuelo por sesión
app.state.analysis_slots = AnalysisSlotRegistry()

# Configurar CORS más específico para producción
if settings.DEBUG:
    # En desarrollo, permitir todos los orígenes
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

# Incluir routers
app.include_router(magic_order.router, prefix="/magic-order", tags=["magic-order"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])


@app.get("/")
async def root():
    return {
        "message": "Magic Order API funcionando!",
        "docs": "/docs",
        "status": "activo"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "magic-order"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000, log_level="debug" if settings.DEBUG else "info")
