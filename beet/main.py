"""FastAPI application entry point.

This module initialises the FastAPI app, configures logging and
registers API routes.  The ``uvicorn`` ASGI server can point to
``beet.main:app`` to serve the application.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from . import __version__
from .config.app_config import get_app_config
from .controllers.chat_controller import router as chat_router
from .services.chat_service import ChatService, get_chat_service
from .services.relay_service import get_relay_service
from .utils.error_handler import ChatError, http_exception_handler
from .utils.logger import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Beet starting")
    yield
    # Resolve through overrides so tests shut down the services they injected
    relay = app.dependency_overrides.get(get_relay_service, get_relay_service)()
    await relay.wait_for_commits()
    await relay.provider.aclose()
    await relay.store.close()
    logger.info("Beet stopped")


def create_app() -> FastAPI:
    """Create and configure a FastAPI application."""
    setup_logging()

    app = FastAPI(title="Beet", version=__version__, lifespan=lifespan)

    # Enable CORS for all origins; adjust in production as needed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ChatError, http_exception_handler)

    app.include_router(chat_router)

    @app.get("/health", tags=["Health"])
    async def health(service: ChatService = Depends(get_chat_service)) -> dict[str, str]:
        """Liveness check including the message store."""
        logger.debug("Health check invoked")
        return await service.health_check()

    return app


# Create an application instance for ASGI servers
app = create_app()


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    import uvicorn

    app_config = get_app_config()
    uvicorn.run("beet.main:app", host=app_config.app_host, port=app_config.app_port)
