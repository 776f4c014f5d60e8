from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1.chat import router as chat_router
from .api.v1.conversations import router as conversations_router
from .api.v1.profile import router as profile_router
from .api.v1.upload import router as upload_router
from .config import Settings, get_settings
from .core.logging import setup_logging
from .db.session import init_db

SERVICE_NAME = "estate-assistant"
VERSION = "0.1.0"


def build_api_router() -> APIRouter:
    """Chat and upload sit directly under /api; the store surface is versioned."""
    api = APIRouter()
    api.include_router(chat_router, tags=["chat"])
    api.include_router(upload_router, tags=["upload"])
    api.include_router(conversations_router, prefix="/v1", tags=["conversations"])
    api.include_router(profile_router, prefix="/v1", tags=["profile"])
    return api


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)
    app = FastAPI(title="Estate Assistant", version=VERSION)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(o).rstrip("/") for o in settings.allowed_origins],
        allow_origin_regex=r"https?://(localhost|127\.0\.0\.1):3000",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(build_api_router(), prefix="/api")

    @app.on_event("startup")
    async def _create_tables() -> None:
        # The in-memory store needs no schema
        if not settings.memory_mode:
            await init_db()

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/")
    def root():
        return {"service": SERVICE_NAME, "version": VERSION}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("estate_assistant.main:app", host="0.0.0.0", port=get_settings().server_port)
