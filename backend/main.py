"""FastAPI backend for the Roblox Gamepass API proxy."""

from __future__ import annotations

import os
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()

import httpx
from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from cache import TTLCache
from gamepass import DEFAULT_API_URL, MAX_BATCH_SIZE, GamepassService, ValidationError
from scheduler import create_scheduler

logger = logging.getLogger(__name__)

HOST             = os.getenv("HOST", "0.0.0.0")
PORT             = int(os.getenv("PORT") or 3000)
GAMEPASS_API_URL = os.getenv("GAMEPASS_API_URL", DEFAULT_API_URL)
UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", "10"))
CORS_ORIGINS     = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL        = os.getenv("LOG_LEVEL", "INFO").upper()

API_NAME    = "Roblox Gamepass API"
API_VERSION = "1.0.0"

_STARTED_AT = time.monotonic()

# ── Lifespan: cache, upstream client, sweep scheduler ────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    cache  = TTLCache()
    client = httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT)
    app.state.gamepass = GamepassService(cache, client, api_url=GAMEPASS_API_URL)

    scheduler = create_scheduler(cache)
    scheduler.start()
    logger.info("Server running on port %d (http://localhost:%d)", PORT, PORT)
    yield
    logger.info("Shutting down server...")
    scheduler.shutdown(wait=False)
    await client.aclose()


app = FastAPI(title=API_NAME, version=API_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error rendering: {"success": false, "error": "..."} ──────────────────────


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Invalid request body"},
    )


# ── Dependencies / request models ─────────────────────────────────────────────


def get_service(request: Request) -> GamepassService:
    return request.app.state.gamepass


class BatchRequest(BaseModel):
    ids: Any = None   # shape is checked by GamepassService so bad input is a 400


# ── Routes ────────────────────────────────────────────────────────────────────


@app.get("/api/gamepass/{gamepass_id}")
async def get_gamepass(gamepass_id: str, svc: GamepassService = Depends(get_service)):
    try:
        record, cached = await svc.get(gamepass_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error fetching gamepass %s: %s", gamepass_id, e)
        raise HTTPException(status_code=500, detail=str(e))

    return {"success": True, "data": record, "cached": cached}


@app.post("/api/gamepass/batch")
async def get_gamepass_batch(
    req: Optional[BatchRequest] = None,
    svc: GamepassService = Depends(get_service),
):
    try:
        results, errors = await svc.get_many(req.ids if req else None)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error batch fetch: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    body: dict[str, Any] = {"success": True, "data": results}
    if errors:
        body["errors"] = errors
    return body


@app.get("/api/health")
async def health(svc: GamepassService = Depends(get_service)):
    return {
        "success":   True,
        "status":    "OK",
        "uptime":    round(time.monotonic() - _STARTED_AT, 3),
        "cacheSize": len(svc.cache),
    }


@app.get("/")
async def root():
    return {
        "name":    API_NAME,
        "version": API_VERSION,
        "endpoints": {
            "GET /api/gamepass/:id":    "Get single gamepass info",
            "POST /api/gamepass/batch": f"Get multiple gamepass info (max {MAX_BATCH_SIZE})",
            "GET /api/health":          "Health check",
        },
    }


# ── Dev entry point ───────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("main:app", host=HOST, port=PORT)
