import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncEngine

from medresponse.config import Settings, get_settings
from medresponse.db.postgres import Base, engine as default_engine, make_session_factory
from medresponse.models.ambulance import AmbulanceUnit
from medresponse.models.facility import MedicalFacility
import medresponse.models  # noqa: F401  register all ORM models with Base.metadata
from medresponse.api.middleware.rate_limit import RateLimitMiddleware
from medresponse.api.routes import ambulances, emergencies, facilities, resources
from medresponse.api.websocket import handler as ws_handler
from medresponse.api.websocket.registry import ConnectionRegistry
from medresponse.api.websocket.relay import BroadcastRelay
from medresponse.api.websocket.storage import SqlAlchemyRelayStorage

logger = logging.getLogger(__name__)


def create_app(engine: Optional[AsyncEngine] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    engine = engine or default_engine

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    # Rate limiting (must be added before CORS so it runs after CORS in the middleware stack)
    app.add_middleware(RateLimitMiddleware, max_requests=200, window_seconds=60)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API routes
    app.include_router(emergencies.router, prefix=settings.API_PREFIX, tags=["Emergencies"])
    app.include_router(ambulances.router, prefix=settings.API_PREFIX, tags=["Ambulances"])
    app.include_router(facilities.router, prefix=settings.API_PREFIX, tags=["Facilities"])
    app.include_router(resources.router, prefix=settings.API_PREFIX, tags=["Resources"])

    # Real-time relay
    app.add_api_websocket_route(settings.WS_PATH, ws_handler.relay_socket)

    @app.on_event("startup")
    async def startup():
        if settings.CREATE_TABLES_ON_STARTUP:
            async with engine.begin() as conn:
                if conn.dialect.name == "postgresql":
                    await conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ensured")

        session_factory = make_session_factory(engine)
        registry = ConnectionRegistry(ping_interval=settings.WS_PING_INTERVAL_SECONDS)
        app.state.session_factory = session_factory
        app.state.registry = registry
        app.state.relay = BroadcastRelay(registry, SqlAlchemyRelayStorage(session_factory))
        logger.info("Real-time relay listening on %s", settings.WS_PATH)

    @app.on_event("shutdown")
    async def shutdown():
        await app.state.registry.close_all()
        await engine.dispose()

    @app.get("/health")
    async def health_check(request: Request):
        registry = getattr(request.app.state, "registry", None)
        services = {"database": "operational", "ambulances": 0, "facilities": 0}
        try:
            async with request.app.state.session_factory() as session:
                await session.execute(text("SELECT 1"))
                services["ambulances"] = await session.scalar(
                    select(func.count()).select_from(AmbulanceUnit)
                )
                services["facilities"] = await session.scalar(
                    select(func.count()).select_from(MedicalFacility)
                )
        except Exception as e:
            logger.error("Health check database query failed: %s", e)
            services["database"] = "degraded"

        return {
            "status": "healthy" if services["database"] == "operational" else "degraded",
            "service": settings.APP_NAME,
            "services": {
                "database": {"status": services["database"]},
                "ambulance_service": {
                    "status": "operational" if services["ambulances"] else "degraded",
                    "units": services["ambulances"],
                },
                "medical_facilities": {
                    "status": "operational" if services["facilities"] else "degraded",
                    "facilities": services["facilities"],
                },
            },
            "realtime_connections": len(registry) if registry is not None else 0,
        }

    return app


app = create_app()
