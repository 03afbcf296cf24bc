"""
FastAPI main application with current-weather endpoints.
"""
import logging
import math
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from current_weather.cache import FreshnessCache
from current_weather.config import Settings
from current_weather.errors import (
    ConfigurationError,
    RateLimitedError,
    UpstreamError,
    WeatherServiceError,
)
from current_weather.models import TemperatureUnit
from current_weather.provider import UpstreamClient
from current_weather.service import WeatherOrchestrator
from utils.metrics import (
    error_counter,
    get_content_type,
    get_metrics,
    health_check_counter,
    request_counter,
    request_duration,
    set_app_info,
)

from .logging_config import log_request, setup_logging
from .responses import error_response, success_response

# Setup logging
startup_settings = Settings.from_env()
setup_logging(startup_settings.log_level)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
WEATHER_PREFIX = "/api/v1/external/weather"
MAX_LOCATION_LENGTH = 50


def build_weather_service(settings: Settings) -> WeatherOrchestrator:
    """Wire the cache, upstream client and orchestrator together."""
    cache = FreshnessCache(
        ttl_seconds=settings.cache_ttl_seconds,
        check_period=settings.cache_check_period,
    )
    client = UpstreamClient(
        api_key=settings.api_key,
        base_url=settings.api_url,
        timeout=settings.upstream_timeout_seconds,
    )
    return WeatherOrchestrator(
        client=client,
        cache=cache,
        stale_threshold_seconds=settings.stale_threshold_seconds,
        refresh_min_interval_seconds=settings.refresh_min_interval_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan event handler."""
    # Startup
    logger.info("Current-weather API starting up")

    settings = Settings.from_env()
    try:
        settings.require_api_key()
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise

    service = build_weather_service(settings)
    app.state.weather_service = service

    logger.info(
        f"Configuration: WEATHER_API_URL={settings.api_url}, "
        f"CACHE_TTL_SECONDS={settings.cache_ttl_seconds:g}, "
        f"CACHE_CHECK_PERIOD={settings.cache_check_period:g}"
    )
    set_app_info(version=API_VERSION, environment=settings.environment)
    logger.info("Current-weather API startup complete")

    yield

    # Shutdown
    logger.info("Current-weather API shutting down")
    service.cache.stop()
    service.client.session.close()
    logger.info("Current-weather API shutdown complete")


app = FastAPI(
    title="Current Weather API",
    description="Cached current-weather lookups with offline fallback",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=startup_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# Metrics collection middleware
@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """
    Collect Prometheus metrics for HTTP requests.
    """
    # Skip metrics collection for the metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    method = request.method
    path = request.url.path

    response = await call_next(request)

    duration = time.time() - start_time

    request_counter.labels(
        method=method, endpoint=path, status_code=response.status_code
    ).inc()
    request_duration.labels(method=method, endpoint=path).observe(duration)

    return response


# Pydantic models
class WeatherRequest(BaseModel):
    location: str = Field(..., min_length=1)
    unit: TemperatureUnit = TemperatureUnit.CELSIUS

    @field_validator("location")
    @classmethod
    def clean_location(cls, v):
        """Strip whitespace and control characters from the location."""
        cleaned = "".join(char for char in v if ord(char) >= 32).strip()
        if not cleaned:
            raise ValueError("Location cannot be empty")
        if len(cleaned) > MAX_LOCATION_LENGTH:
            raise ValueError(
                f"Location must be at most {MAX_LOCATION_LENGTH} characters"
            )
        return cleaned


class HealthResponse(BaseModel):
    ok: bool


def get_weather_service(request: Request) -> WeatherOrchestrator:
    service = getattr(request.app.state, "weather_service", None)
    if service is None:
        raise ConfigurationError("Weather service is not initialized")
    return service


def _serve(task: str, params: WeatherRequest, fetch) -> dict:
    request_id = str(uuid.uuid4())
    start_time = time.time()

    snapshot = fetch(params.location, params.unit)

    log_request(
        logger,
        request_id,
        task,
        int((time.time() - start_time) * 1000),
        snapshot.status.value,
        f"{task} served {snapshot.status.value} data",
        location=params.location,
        unit=params.unit.value,
    )
    return success_response(snapshot.to_dict(), {"requestId": request_id})


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    health_check_counter.labels(status="ok").inc()
    return HealthResponse(ok=True)


@app.get("/metrics")
async def metrics_endpoint():
    """Prometheus metrics endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


@app.get(f"{WEATHER_PREFIX}/current")
def get_current_weather(
    params: Annotated[WeatherRequest, Query()],
    service: WeatherOrchestrator = Depends(get_weather_service),
):
    """
    Current temperature for a location, from cache when fresh enough.
    """
    return _serve("current_weather", params, service.get_current_weather)


@app.post(f"{WEATHER_PREFIX}/refresh")
def refresh_weather(
    params: WeatherRequest,
    service: WeatherOrchestrator = Depends(get_weather_service),
):
    """
    Manually refresh weather data for a location (at most every 30 seconds).
    """
    return _serve("refresh_weather", params, service.refresh_weather)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    error_counter.labels(error_type="validation", endpoint=request.url.path).inc()
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response("VALIDATION_ERROR", "Invalid request parameters", details),
    )


@app.exception_handler(WeatherServiceError)
async def weather_service_exception_handler(request: Request, exc: WeatherServiceError):
    """Map domain errors to HTTP status codes and the error envelope."""
    headers = None
    if isinstance(exc, RateLimitedError):
        status_code = status.HTTP_429_TOO_MANY_REQUESTS
        headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))}
        details = {"retryAfter": round(exc.retry_after, 1)}
    elif isinstance(exc, UpstreamError):
        status_code = status.HTTP_502_BAD_GATEWAY
        details = None
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        details = None
        logger.error(f"Server error on {request.url.path}: {exc}")

    error_counter.labels(error_type=exc.code.lower(), endpoint=request.url.path).inc()
    return JSONResponse(
        status_code=status_code,
        content=error_response(exc.code, str(exc) or "Failed to fetch weather data", details),
        headers=headers,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """Custom HTTP exception handler for consistent error responses."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response("HTTP_ERROR", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.url.path}: {exc}")
    error_counter.labels(error_type="internal_error", endpoint=request.url.path).inc()
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response("INTERNAL_ERROR", "An unexpected error occurred"),
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run("api.main:app", host="0.0.0.0", port=port, log_level="info", reload=False)
