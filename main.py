import logging
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.routers import admin, webhooks
from app.config import settings
from app.redis_client import close_redis


# Configure logging
if settings.log_format == "json":
    import json as json_mod

    class JsonFormatter(logging.Formatter):
        def format(self, record):
            log_data = {
                "timestamp": self.formatTime(record),
                "level": record.levelname,
                "message": record.getMessage(),
                "module": record.module,
                "request_id": getattr(record, "request_id", None),
            }
            if record.exc_info:
                log_data["exception"] = self.formatException(record.exc_info)
            return json_mod.dumps(log_data)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logging.root.handlers = [handler]

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger("learnbridge")

VERSION = "1.0.0"


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "learnbridge starting (environment=%s, mappings=%s backend)",
        settings.environment, settings.mapping_backend,
    )
    yield
    close_redis()


# Create FastAPI application
app = FastAPI(
    title="LearnBridge API",
    description="Syncs Shopify subscription orders to LearnWorlds course enrollments",
    version=VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def create_error_response(error: Exception, context: str) -> dict:
    """Standardized error body; stack traces stay out of production"""
    logger.error("Error in %s: %s", context, error)
    body = {
        "error": True,
        "message": str(error) or "An unknown error occurred",
        "context": context,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if settings.environment != "production":
        body["stack"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return body


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=500, content=create_error_response(exc, request.url.path))


# Include routers
app.include_router(webhooks.router)
app.include_router(admin.router)


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "environment": settings.environment,
        "version": VERSION,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, reload=settings.debug)
