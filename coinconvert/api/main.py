from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coinconvert.api.security import NonceSigner, RateLimiter, client_ip
from coinconvert.api.service import PriceQueryService
from coinconvert.config import Settings, settings
from coinconvert.errors import SourceError
from coinconvert.ingestion.client import CachedPriceClient
from coinconvert.ingestion.pipeline import build_client
from coinconvert.ingestion.sources import available_sources
from coinconvert.models import ErrorResponse, SourceInfo

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

NONCE_ACTION = "prices"

router = APIRouter()


def require_admin(request: Request, x_api_key: Optional[str] = Header(None)) -> None:
    expected = request.app.state.settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=404, detail="Not Found")
    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@router.get("/sources", response_model=List[SourceInfo])
async def list_sources() -> List[SourceInfo]:
    return [SourceInfo(slug=slug, name=name) for slug, name in available_sources().items()]


@router.get("/prices")
async def get_prices(
    request: Request,
    coins: Optional[str] = Query(None, description="Comma-separated list of coin symbols (e.g., BTC,ETH,ADA)"),
    nonce: Optional[str] = Query(None, description="Request token, required when NONCE_SECRET is set"),
) -> JSONResponse:
    state = request.app.state
    if state.nonce_signer is not None and not state.nonce_signer.verify(nonce, NONCE_ACTION):
        body = ErrorResponse(message="Security check failed. Invalid or missing nonce.")
        return JSONResponse(status_code=403, content=body.model_dump())

    ip = client_ip(request.headers, request.client.host if request.client else None)
    status, body = state.query_service.get_prices(coins, ip)
    return JSONResponse(status_code=status, content=body)


@router.get("/selected-coins")
async def get_selected_coins(request: Request) -> JSONResponse:
    status, body = await request.app.state.query_service.get_selected_coins()
    return JSONResponse(status_code=status, content=body)


@router.post("/admin/coins/refresh", dependencies=[Depends(require_admin)])
async def refresh_coins(request: Request) -> JSONResponse:
    """Force a coin list refresh; provider errors are reported to the operator."""
    client: CachedPriceClient = request.app.state.client
    try:
        coins = await client.get_available_coins(force=True)
    except SourceError as exc:
        logger.warning("Forced coin list refresh failed [%s]: %s", exc.code, exc.message)
        return JSONResponse(status_code=502, content={"success": False, "code": exc.code, "message": exc.message})
    return JSONResponse(status_code=200, content={"success": True, "count": len(coins)})


@router.post("/admin/prices/refresh", dependencies=[Depends(require_admin)])
async def refresh_prices(request: Request) -> JSONResponse:
    summary = await request.app.state.client.refresh_prices()
    return JSONResponse(status_code=200 if summary.success else 502, content=summary.model_dump())


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    client: CachedPriceClient = app.state.client
    client.ensure_scheduled()

    task: Optional[asyncio.Task] = None
    if app.state.settings.scheduler_enabled:
        task = asyncio.create_task(client.scheduler.run_forever(app.state.settings.scheduler_tick_seconds))
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


def create_app(config: Settings = settings, client: Optional[CachedPriceClient] = None) -> FastAPI:
    app = FastAPI(
        title="Crypto Price Converter API",
        version="0.1.0",
        description="Cached cryptocurrency prices for the converter widgets.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    client = client or build_client(config)
    app.state.settings = config
    app.state.client = client
    app.state.query_service = PriceQueryService(
        client,
        rate_limiter=RateLimiter(config.rate_limit_max_requests, config.rate_limit_window_seconds),
        selected_coin_ids=config.selected_coin_ids,
    )
    app.state.nonce_signer = (
        NonceSigner(config.nonce_secret, config.nonce_lifetime_seconds) if config.nonce_secret else None
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
