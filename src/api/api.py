import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Annotated, Any, AsyncGenerator, Awaitable, Callable

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictInt
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.dependencies import build_quote_source, get_cache_warmer, get_rate_service
from config import config
from db.db import create_db_engine
from services.cache_warmer import CacheWarmer
from services.errors import InvalidUpstreamResponse, RatesCacheError, StoreError, UpstreamUnavailable, ValidationError
from services.rate_service import RateCacheService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI) -> AsyncGenerator[None, None]:
    settings = config()
    engine = create_db_engine(settings.database_url)
    quote_source = build_quote_source(settings)
    fastapi_app.state.sessionmaker = sessionmaker(engine)
    fastapi_app.state.quote_source = quote_source
    yield
    quote_source.close()
    engine.dispose()


app = FastAPI(lifespan=lifespan)


class RateRequest(BaseModel):
    from_denom: str | None = None
    to_denom: str | None = None
    ttl_seconds: StrictInt | None = None


def _status_for(exc: RatesCacheError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, StoreError):
        return 500
    if isinstance(exc, (UpstreamUnavailable, InvalidUpstreamResponse)):
        return 502
    return 500


@app.exception_handler(RatesCacheError)
async def rates_cache_error_handler(request: Request, exc: RatesCacheError) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "POST required" if exc.status_code == 405 else str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(part) for part in error["loc"][1:]) or "body" for error in exc.errors()})
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {', '.join(fields)}"})


@app.middleware("http")
async def log_process_time(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    start_time = perf_counter()
    response = await call_next(request)
    process_time = perf_counter() - start_time
    logger.info(
        "Request time: %s %s -> %d: %.4fs", request.method, request.url.path, response.status_code, process_time
    )
    return response


@app.post("/get_best_rate")
def get_best_rate(
    body: RateRequest,
    service: Annotated[RateCacheService, Depends(get_rate_service)],
) -> dict[str, Any]:
    lookup = service.get_rate(body.from_denom, body.to_denom, body.ttl_seconds)
    result: dict[str, Any] = {
        "rate": lookup.rate,
        "path": lookup.path,
        "liquidity": lookup.liquidity,
        "cached": lookup.cached,
    }
    if lookup.ttl is not None:
        result["ttl"] = lookup.ttl
    return result


@app.post("/refresh_rates_cache")
def refresh_rates_cache(warmer: Annotated[CacheWarmer, Depends(get_cache_warmer)]) -> dict[str, Any]:
    result = warmer.warm_all()
    return {"success": True, "warmed": result.warmed, "failed": result.failed}
