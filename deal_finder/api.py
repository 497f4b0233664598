from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from supabase import Client, create_client

from . import __version__
from .cache import SupabaseDealCache
from .config import Config
from .errors import AuthorizationError, ExtractionError, FetchError
from .http import CancelToken
from .identity import build_identity
from .pipeline import DealFinder
from .schemas import DealRequest, DealsResponse, VerifyRequest, VerifyResponse

_DISCONNECT_POLL_S = 0.5

app = FastAPI(title="Deal Finder", version=__version__)


@lru_cache()
def get_config() -> Config:
    return Config.load_from_env()


@lru_cache()
def get_supabase() -> Client:
    cfg = get_config()
    if not cfg.cache_enabled:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
    return create_client(cfg.supabase_url, cfg.supabase_key)


@lru_cache()
def get_finder() -> DealFinder:
    cfg = get_config()
    cache = SupabaseDealCache(get_supabase()) if cfg.cache_enabled else None
    return DealFinder(cfg, cache=cache)


def _get_client() -> Client:
    try:
        return get_supabase()
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Supabase client initialization failed",
        ) from exc


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthorizationError("Missing bearer token")
    return authorization.split(" ", 1)[1].strip()


def authenticate(client: Client, authorization: Optional[str]):
    """Validate a Supabase access token (Bearer) and return the auth user."""
    token = _bearer_token(authorization)
    try:
        user = client.auth.get_user(token).user
    except Exception as exc:
        raise AuthorizationError("Invalid or expired token") from exc
    if user is None:
        raise AuthorizationError("User not found")
    return user


def get_current_user(authorization: Optional[str] = Header(default=None)):
    try:
        # header shape is checked before the client is built
        _bearer_token(authorization)
        return authenticate(_get_client(), authorization)
    except AuthorizationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc


async def _cancel_on_disconnect(request: Request, cancel: CancelToken) -> None:
    while not cancel.cancelled:
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling lookup")
            cancel.cancel()
            return
        await asyncio.sleep(_DISCONNECT_POLL_S)


@app.get("/health")
def healthcheck():
    return {"status": "ok", "version": __version__}


@app.post("/find-deals", response_model=DealsResponse)
async def find_deals(
    body: DealRequest,
    request: Request,
    user=Depends(get_current_user),
    finder: DealFinder = Depends(get_finder),
):
    cancel = CancelToken()
    watcher = asyncio.create_task(_cancel_on_disconnect(request, cancel))
    try:
        return await asyncio.to_thread(finder.find_deals, body, cancel=cancel)
    except Exception as exc:
        logger.exception("find-deals failed: {!r}", exc)
        return JSONResponse(status_code=500, content={"success": False, "error": "Failed to find deals"})
    finally:
        watcher.cancel()


@app.post("/verify-listing", response_model=VerifyResponse)
async def verify_listing(
    body: VerifyRequest,
    user=Depends(get_current_user),
    finder: DealFinder = Depends(get_finder),
):
    wanted = build_identity(
        brand=body.brand,
        name=body.name,
        size=body.size,
        form=body.form,
        scent_shade=body.scent_shade,
        gtin=body.gtin,
        scent_aliases=finder.cfg.scent_aliases,
    )
    try:
        v = await asyncio.to_thread(finder.verify_listing, body.url, wanted)
    except (FetchError, ExtractionError) as exc:
        logger.info("verify-listing could not read {}: {}", body.url, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Could not load listing") from exc
    return VerifyResponse.from_result(v.url, v.result, v.reading.warnings)
