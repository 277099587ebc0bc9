from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from mandalamind.core import config
from mandalamind.core.logging_config import setup_json_logger
from mandalamind.core.request_logger import ContextLoggingMiddleware, RequestLoggingMiddleware
from mandalamind.routes import ai_controller, mandala_controller, neurosky_controller, session_controller
from mandalamind.services.ai_base import build_ai_service
from mandalamind.services.neurosky_service import NeuroSkyConfig, NeuroSkyConnectionError, NeuroSkyService
from mandalamind.services.openai_service import OpenAIService
from mandalamind.storage import build_storage
from mandalamind.websocket import routes as websocket_routes
from mandalamind.websocket.events import wire_neurosky_events
from mandalamind.websocket.manager import ConnectionManager


logger = setup_json_logger()


def create_app(storage=None, neurosky=None, ai_service=None, sentiment_service=None) -> FastAPI:
    """Build the app; anything not passed in is built from the environment."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Startup ---
        logger.info("🚀 MandalaMind service starting up")
        state = app.state
        state.manager = ConnectionManager()
        state.storage = storage if storage is not None else build_storage(config.STORAGE_BACKEND, config.DATABASE_URL)
        state.ai_service = ai_service if ai_service is not None else build_ai_service(config.AI_PROVIDER)
        state.sentiment_service = sentiment_service if sentiment_service is not None else OpenAIService(api_key=config.OPENAI_API_KEY)
        state.neurosky = neurosky if neurosky is not None else NeuroSkyService(
            NeuroSkyConfig(auto_connect=config.NEUROSKY_AUTO_CONNECT)
        )
        wire_neurosky_events(state.neurosky, state.manager, state.storage)
        logger.info(f"✅ Services ready (AI provider: {state.ai_service.provider})")

        if state.neurosky.config.auto_connect:
            try:
                await state.neurosky.connect()
            except NeuroSkyConnectionError as e:
                logger.warning(f"NeuroSky auto-connect failed: {e}")

        yield

        # --- Shutdown ---
        logger.info("🛑 MandalaMind service shutting down")
        await state.neurosky.disconnect()
        await state.neurosky.drain()
        await state.storage.close()

    app = FastAPI(
        title="MandalaMind API",
        description="Turns NeuroSky brainwave readings and voice transcripts into mandala art.",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ContextLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ✅ HEALTH CHECK ENDPOINT
    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    # Include routers
    app.include_router(session_controller.router, prefix="/api", tags=["Sessions"])
    app.include_router(mandala_controller.router, prefix="/api", tags=["Mandalas"])
    app.include_router(neurosky_controller.router, prefix="/api", tags=["NeuroSky"])
    app.include_router(ai_controller.router, prefix="/api", tags=["AI"])
    app.include_router(websocket_routes.router)

    # Gemini images are saved here
    Path(config.ASSETS_DIR).mkdir(parents=True, exist_ok=True)
    app.mount("/attached_assets", StaticFiles(directory=config.ASSETS_DIR), name="attached_assets")

    return app


app = create_app()
