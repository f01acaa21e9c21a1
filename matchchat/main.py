import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from matchchat.config import settings
from matchchat.database import build_engine, build_session_factory, create_tables
from matchchat.errors import ChatError
from matchchat.logging_utils import RequestLoggingMiddleware, setup_logging
from matchchat.repositories.message_repository import MessageStore
from matchchat.services.history import HistoryService
from matchchat.websocket_manager import DeliveryGateway

logger = logging.getLogger(__name__)


def create_app(database_url: Optional[str] = None) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(database_url)
        await create_tables(engine)

        store = MessageStore(build_session_factory(engine))
        app.state.store = store
        app.state.gateway = DeliveryGateway(store)
        app.state.history = HistoryService(store)
        logger.info("Chat service started", extra={"version": settings.VERSION})
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="MatchChat messaging API",
        lifespan=lifespan
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "detail": exc.detail})

    from matchchat.api.v1 import chat, websocket

    app.include_router(chat.router, prefix="/api/v1/chat", tags=["chat"])
    app.include_router(websocket.router, prefix="/api/v1/ws", tags=["websocket"])

    @app.get("/")
    async def root():
        return {"message": "MatchChat API", "version": settings.VERSION}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


setup_logging(settings.LOG_LEVEL)
app = create_app()
