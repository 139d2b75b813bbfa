"""
FastAPI application for the todo backend.

Run with: uvicorn todo_copilot.main:app
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, List

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .errors import TodoAppError
from .logging_config import configure_logging
from .repositories import get_repository
from .routers import todos as todos_router
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Liveness and active storage backend."},
    {
        "name": "todos",
        "description": "Todos with subtasks, tags and descriptions over pluggable storage backends.",
    },
]


def _cors_origins(settings: Settings) -> List[str]:
    # an empty list means "not configured", same as '*'
    origins = settings.cors_allow_origins
    return ["*"] if not origins or origins == ["*"] else origins


def _error_body(code: str, message: str, detail: Any) -> dict:
    return {"error": code, "message": message, "detail": detail}


_settings = get_settings()
configure_logging(_settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Resolve the storage backend on startup and release it on shutdown."""
    repository = get_repository()
    logger.info("Starting todo backend with %s persistence", repository.name)

    yield

    logger.info("Shutting down todo backend")
    await repository.close()


app = FastAPI(
    title="Todo Copilot Backend",
    description="Todo API with an immutable Todo aggregate and interchangeable storage backends.",
    version=__version__,
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(_settings),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies or parameters: 422 with the pydantic error list."""
    return JSONResponse(
        status_code=422,
        content=_error_body("ValidationError", "Request validation failed", jsonable_encoder(exc.errors())),
    )


@app.exception_handler(TodoAppError)
async def app_error_handler(request: Request, exc: TodoAppError) -> JSONResponse:
    """
    Render domain, application and storage errors with their own HTTP status.

    Body: {"error": "<CODE>", "message": "...", "detail": {...}}
    """
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Report that the service is up and which storage backend it uses.
    """
    return {"message": "Healthy", "backend": get_repository().name}


app.include_router(todos_router.router)
