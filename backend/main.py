import os
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from api import router
from services.ai import get_llm_manager, initialize_ai
from services.weather.errors import BadRequest
from utils.logger import setup_logging, get_logger
from utils.utcnow import utcnow

# Setup logging
setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting weather report service...")

    initialize_ai(
        api_key=settings.GOOGLE_API_KEY,
        default_model=settings.GEMINI_MODEL,
        timeout_seconds=settings.UPSTREAM_TIMEOUT_SECONDS * 3,
    )

    missing = settings.missing_credentials()
    if "WEATHERAPI_KEY" in missing:
        logger.error("WEATHERAPI_KEY is not configured; live weather is unavailable")
    for name in missing:
        if name != "WEATHERAPI_KEY":
            logger.warning("Optional credential not configured", setting=name)

    logger.info(
        "Weather service ready",
        cache_seconds=settings.WEATHER_CACHE_SECONDS,
        env_cache_seconds=settings.ENV_CACHE_SECONDS,
        cooldown_seconds=settings.ERROR_COOLDOWN_SECONDS,
    )

    yield

    logger.info("Shutting down weather report service...")


app = FastAPI(
    title="Weather Report",
    description="City weather reports with pollen, yellow-sand and PM2.5 commentary",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(BadRequest)
async def bad_request_handler(request: Request, exc: BadRequest):
    logger.warning("Bad request", path=request.url.path, details=exc.details)
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": exc.details})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body') or 'body'}: {err.get('msg')}"
        for err in exc.errors()
    )
    logger.warning("Invalid request body", path=request.url.path, details=details)
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        traceback=traceback.format_exc(),
    )
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# API routes
app.include_router(router, prefix="/api", tags=["Weather"])


@app.get("/health")
async def health_check():
    """Basic health check - for load balancers"""
    return {"status": "ok"}


@app.get("/health/detailed")
async def detailed_health_check():
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "missing_credentials": settings.missing_credentials(),
        "ai": get_llm_manager().get_usage_stats(),
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        # Single worker: the report cache lives in process memory.
        timeout_keep_alive=30,
    )
