import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import admin, auth, chats, generations, upload, webhooks
from app.core.config import get_settings
from app.core.database import init_db
from app.core.errors import AppError
from app.core.log import setup_logging


settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)


origins = [
    origin.strip()
    for origin in settings.BACKEND_CORS_ORIGINS.split(",")
    if origin.strip()
]

# wildcard cannot be combined with allow_credentials=True
allow_all = not origins or "*" in origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else origins,
    allow_credentials=not allow_all,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    # pydantic prefixes messages from custom validators
    message = message.removeprefix("Value error, ")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message},
    )


init_db()


app.include_router(auth.router)
app.include_router(generations.router)
app.include_router(chats.router)
app.include_router(upload.router)
app.include_router(webhooks.router)
app.include_router(admin.router)


@app.get("/health")
def health():
    return {"status": "ok"}
