import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import ValidationError
from .settings import get_settings
from .routers import todos as todos_router

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "todos",
        "description": "CRUD operations for Todo items with filtering, sorting, and pagination.",
    },
]

_settings = get_settings()

logging.basicConfig(
    level=_settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Todo Backend",
    description="Backend API service for managing todos with pluggable storage backends.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(ValidationError)
async def record_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Render a TodoRecord constraint violation with the same shape as request validation errors."""
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": exc.message,
            "detail": [{"loc": ["body", exc.field], "msg": exc.message, "type": "value_error"}],
        },
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


app.include_router(todos_router.router)
