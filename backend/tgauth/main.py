# /tgauth/main.py

import os
import time
import logging
import asyncio
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.staticfiles import StaticFiles
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from tgauth.config.settings import settings
from tgauth.models.errors import ServiceError, TransientStoreError
from tgauth.utils.lifecycle import lifespan
from tgauth.utils.metrics import response_time_histogram
from tgauth.utils.rate_limiter import limiter
from tgauth.routes import public, projects, verification, webhooks

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Telegram Phone Verification",
    version="1.0.0",
    description="Links phone numbers to Telegram chats and verifies one-time codes for client projects",
    lifespan=lifespan,
    openapi_url="/openapi.json" if settings.environment != "production" else None,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url=None,
)

# --- Static admin UI ---
if os.path.isdir(settings.admin_ui_dir):
    app.mount("/admin", StaticFiles(directory=settings.admin_ui_dir, html=True), name="admin")


# --- Error rendering: every failure is {"error": "..."} ---

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)

@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"Storage error on {request.url.path}: {exc}")
    error = TransientStoreError()
    return JSONResponse({"error": error.message}, status_code=error.status_code)

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        name = loc[0] if loc else "body"
        if name not in fields:
            fields.append(name)
    message = f"{' and '.join(fields)} required" if fields else "invalid request"
    return JSONResponse({"error": message}, status_code=400)

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=getattr(exc, "headers", None))

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse({"error": f"rate limit exceeded: {exc.detail}"}, status_code=429)


# --- Rate Limiting ---
app.state.limiter = limiter

# --- Middleware ---
cors_origins = [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

if settings.environment != "test":
    allowed_hosts = [host.strip() for host in settings.allowed_hosts.split(",") if host.strip()]
    if allowed_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

app.add_middleware(SlowAPIMiddleware)

@app.middleware("http")
async def performance_middleware(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    route = request.scope.get("route")
    endpoint = getattr(route, "path", "unmatched")
    response_time_histogram.labels(endpoint=endpoint).observe(process_time)
    response.headers["X-Process-Time"] = str(process_time)
    return response

@app.middleware("http")
async def timeout_middleware(request: Request, call_next):
    try:
        return await asyncio.wait_for(call_next(request), timeout=30.0)
    except asyncio.TimeoutError:
        return JSONResponse({"error": "request timed out"}, status_code=504)

# --- API Routers ---
app.include_router(public.router)
app.include_router(projects.router)
app.include_router(verification.router)
app.include_router(webhooks.router, prefix="/webhooks")

# --- Main Entry Point for Uvicorn (for local development) ---
if __name__ == "__main__":
    port = int(os.getenv("PORT", "3000"))
    host = os.getenv("HOST", "127.0.0.1")

    uvicorn.run(
        "tgauth.main:app",
        host=host,
        port=port,
        reload=settings.environment == "development",
        workers=settings.workers if settings.environment == "production" else 1
    )
