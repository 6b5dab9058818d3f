"""
Stan Chat - conversational endpoint with per-user memory
FastAPI Application Entry Point

Run locally with:

    python -m api.main

Configuration comes from environment variables or a .env file
(see config/settings.py).
"""
# Load environment variables from .env file first, before any imports
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.staticfiles import StaticFiles

from api.routes import chat_router, memories_router
from api.routes.chat import MESSAGE_REQUIRED
from config.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    if not settings.api_key_configured:
        logger.warning("OPENROUTER_API_KEY is not set; replies will carry provider errors")

    # Startup: open the fact store so schema problems surface immediately
    try:
        from api.services.fact_store import get_fact_store
        store = get_fact_store()
        logger.info(f"Fact store ready at {store.db_path}")
    except Exception as e:
        logger.error(f"Failed to open fact store: {e}")

    yield  # Application runs here

    logger.info("Stan Chat shutting down")


app = FastAPI(
    title="Stan Chat",
    description="Conversational endpoint that remembers facts about each user",
    version="0.1.0",
    lifespan=lifespan
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(chat_router)
app.include_router(memories_router)


def _is_message_error(error: dict) -> bool:
    """True for errors about the chat message or the body as a whole."""
    if error.get("type") == "json_invalid":
        return True
    loc = tuple(error.get("loc", ()))
    return loc == ("body",) or loc[:2] == ("body", "message")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert validation errors to 400 with clear messages."""
    errors = exc.errors()

    # Sanitize errors for JSON serialization (convert bytes to string)
    sanitized_errors = []
    for error in errors:
        sanitized = dict(error)
        if "input" in sanitized and isinstance(sanitized["input"], bytes):
            sanitized["input"] = sanitized["input"].decode("utf-8", errors="replace")
        sanitized.pop("ctx", None)
        sanitized_errors.append(sanitized)

    if request.url.path == "/api/chat" and any(_is_message_error(e) for e in errors):
        return JSONResponse(
            status_code=400,
            content={"error": MESSAGE_REQUIRED}
        )

    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "detail": sanitized_errors}
    )


@app.get("/health")
async def health_check():
    """Health check endpoint that verifies critical dependencies."""
    from api.services.fact_store import get_fact_store
    from api.services.service_health import (
        get_service_health,
        mark_service_failed,
        mark_service_healthy,
    )

    store_ok = get_fact_store().ping()
    if store_ok:
        mark_service_healthy("fact_store")
    else:
        mark_service_failed("fact_store", "ping failed")

    checks = {
        "api_key_configured": settings.api_key_configured,
        "fact_store": store_ok,
    }

    all_healthy = all(checks.values())
    return {
        "status": "healthy" if all_healthy else "degraded",
        "service": "stan-chat",
        "checks": checks,
        "services": get_service_health().get_summary(),
    }


# Serve the chat page last so API routes take precedence
if settings.public_dir.exists():
    app.mount("/", StaticFiles(directory=str(settings.public_dir), html=True), name="static")


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Server running on http://localhost:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)
