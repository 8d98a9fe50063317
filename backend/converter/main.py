"""FastAPI application entry point for the conversion endpoint."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from converter.api.routes import router
from converter.config import CORS_ORIGINS, logger as config_logger
from converter.conversion import capabilities

logging.getLogger("uvicorn").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config_logger.info("Converter API started (capabilities: %s)", capabilities())
    yield
    config_logger.info("Converter API shutting down")


app = FastAPI(
    title="Image Converter API",
    description="Convert JPEG/PNG images to AVIF, WebP or JPEG.",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Render errors as {"error": ..., "code": ...} for the batch client."""
    body = {"error": str(exc.detail)}
    code = getattr(exc, "code", None)
    if code:
        body["code"] = code
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"error": "Invalid request parameters."}, status_code=400)


app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.include_router(router)


def run() -> None:
    import uvicorn
    from converter.config import HOST, PORT
    uvicorn.run("converter.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    run()
