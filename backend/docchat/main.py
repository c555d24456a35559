"""DocChat Backend Application.

Main entry point for the document chat service: users upload documents to
a shared knowledge base and chat with a model that can cite them.

Modules:
    - files: streaming multipart upload pipeline and document listing
    - content_store: external store the documents are handed to
    - chat: streamed chat turns and chat history
    - ai_provider: streaming chat model providers
    - storage: DuckDB catalog of documents, chats and messages
    - auth: caller identity
"""
import asyncio
import functools
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from docchat.ai_provider import get_chat_provider, resolve_chat_provider, set_chat_provider
from docchat.chat.history_router import router as chats_router
from docchat.chat.router import router as chat_router
from docchat.config import get_config
from docchat.content_store import get_content_store, resolve_content_store, set_content_store
from docchat.files.router import router as files_router
from docchat.storage import CatalogService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# urllib3/httpx/httpcore log every TCP connection and TLS handshake;
# the Google client libraries log every RPC.
for _noisy in (
    "urllib3",
    "urllib3.connectionpool",
    "httpx",
    "httpcore",
    "google",
    "grpc",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # `logging.level: "debug"` in docchat.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    upload_dir = Path(config.uploads.upload_dir)
    await asyncio.get_running_loop().run_in_executor(
        None, functools.partial(upload_dir.mkdir, parents=True, exist_ok=True)
    )
    logger.info(
        "Uploads: dir=%s limit=%dMB field=%s",
        upload_dir,
        config.uploads.max_file_size_mb,
        config.uploads.field_name,
    )

    CatalogService.get_instance(config.database.path)
    logger.info("Catalog ready: %s", config.database.path)

    set_content_store(resolve_content_store(config))
    if get_content_store() is None:
        logger.warning("No content store available; uploads will be rejected")

    set_chat_provider(resolve_chat_provider(config))
    if get_chat_provider() is None:
        logger.warning("No chat provider available; chat turns will fail")

    logger.info(
        "Server running on http://%s:%d", config.server.host, config.server.port
    )

    yield  # Application runs here

    # Shutdown
    CatalogService.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="DocChat API",
    description="Document upload and streaming chat over a shared knowledge base",
    version="0.1.0",
    lifespan=lifespan,
)

# Register all routers
app.include_router(files_router)
app.include_router(chat_router)
app.include_router(chats_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    _config = get_config()
    uvicorn.run(app, host=_config.server.host, port=_config.server.port)
