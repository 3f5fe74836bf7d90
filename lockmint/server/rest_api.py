"""
FastAPI status API for LockMint

Read-only view of a running scanner: health probes, scan progress and
Prometheus metrics.  Enabled with REST_API_ENABLED=1 and served from the
scanner's own event loop.
"""

from typing import Optional
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from lockmint import version_short
from lockmint.lib.protocol import MAX_MINT_AMOUNT, PROTOCOL_ID, config_summary

# App instance
app = FastAPI(
    title="LockMint Status API",
    description="Progress and health of the LLM-21 lock-like-mint scanner",
    version=version_short,
    docs_url="/docs",
    redoc_url="/redoc",
)


def _api_key_ok(x_api_key: Optional[str]) -> bool:
    required_key = (_api_key or '').strip()
    if not required_key:
        return True
    return bool(x_api_key) and x_api_key == required_key


@app.middleware("http")
async def _security_middleware(request: Request, call_next):
    path = request.url.path
    if path.startswith('/health'):
        return await call_next(request)

    if not _api_key_ok(request.headers.get('x-api-key')):
        return JSONResponse(status_code=401, content={'detail': 'Unauthorized'})
    return await call_next(request)

# Scanner references and API key (set by the controller on startup)
_context = None
_consumer = None
_metrics = None
_api_key = None
_start_time = time.time()


def set_scanner(context, consumer, metrics=None, api_key=None):
    """Set the scanner references and the required API key (None: open)."""
    global _context, _consumer, _metrics, _api_key
    _context = context
    _consumer = consumer
    _metrics = metrics
    _api_key = api_key


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    uptime_seconds: float
    configured: bool
    last_block_height: Optional[int] = None


# =============================================================================
# HEALTH & STATUS ENDPOINTS
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Scanner health: healthy once the deploy configuration is loaded."""
    configured = _context is not None
    last_height = _consumer.last_block_height if _consumer else None
    return HealthResponse(
        status="healthy" if configured else "degraded",
        uptime_seconds=round(time.time() - _start_time, 2),
        configured=configured,
        last_block_height=last_height,
    )


@app.get("/health/live", tags=["Health"])
async def health_live():
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
async def health_ready():
    if _context is None or _consumer is None:
        raise HTTPException(status_code=503, detail="Scanner not configured")
    return {"status": "ready", "target_token_id": _context.target_token_id}


@app.get("/status", tags=["Status"])
async def get_status():
    """Target token, thresholds and scan counters."""
    status = {
        "api_version": version_short,
        "uptime_seconds": round(time.time() - _start_time, 2),
        "protocol": PROTOCOL_ID,
        "max_mint_amount": MAX_MINT_AMOUNT,
    }

    if _context is not None:
        status["target_token_id"] = _context.target_token_id
        status["deploy"] = config_summary(_context.config)

    if _consumer is not None:
        status["scan"] = _consumer.stats()

    return status


@app.get("/metrics", response_class=PlainTextResponse, tags=["Status"])
async def get_metrics_text():
    """Prometheus text exposition."""
    if _metrics is None:
        raise HTTPException(status_code=503, detail="Metrics not available")
    return PlainTextResponse(_metrics.generate_metrics(),
                             media_type='text/plain; version=0.0.4')
