from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from community_grid.core.config import settings
from community_grid.core.event_handlers import on_shutdown, on_startup
from community_grid.api.v1.endpoints import claims as claims_endpoints
from community_grid.api.v1.endpoints import grid as grid_endpoints
from community_grid.api.websockets import endpoints as ws_router
from community_grid.api import health as health_router

logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    logger.info("Application startup sequence initiated...")
    await on_startup(app_instance)
    try:
        yield
    finally:
        logger.info("Application shutdown sequence initiated...")
        await on_shutdown(app_instance)

app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    version="0.1.0",
    lifespan=lifespan,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_v1_router_prefix = settings.API_V1_PREFIX
app.include_router(claims_endpoints.router, prefix=api_v1_router_prefix, tags=["V1 - Claims"])
app.include_router(grid_endpoints.router, prefix=api_v1_router_prefix, tags=["V1 - Grid"])

app.include_router(ws_router.router, prefix="/ws", tags=["WebSockets"])

app.include_router(health_router.router, tags=["Health Checks"])

@app.get("/", tags=["Root"])
async def read_root():
    return {"message": f"Welcome to {settings.APP_NAME} - Version {app.version}"}
