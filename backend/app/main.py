"""
backend/app/main.py

Purpose:
    FastAPI application bootstrap: logging, middleware/router wiring,
    exception mapping and shutdown of the upstream HTTP clients.

Dependencies:
    - app.routers.bets
    - app.routers.odds
    - app.providers.odds_api
    - app.services.ledger_gateway
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.middleware.logging import StructuredLoggingMiddleware, setup_logging
from app.services.placement_errors import PlacementError

logger = logging.getLogger("betslip")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if not settings.ODDSAPIKEY:
        logger.warning("ODDSAPIKEY not set; placement will answer 'Server misconfigured.'")
    if not settings.LEDGER_URL:
        logger.warning("LEDGER_URL not set; placement will answer 'Server misconfigured.'")
    logger.info("Placement backend started")

    yield

    from app.providers.odds_api import odds_provider
    from app.services.ledger_gateway import ledger_gateway

    await odds_provider.aclose()
    await ledger_gateway.aclose()


app = FastAPI(
    title="Bet slip placement",
    description="Revalidates bet slips against live odds before settlement",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

from app.routers.bets import router as bets_router
from app.routers.odds import router as odds_router

app.include_router(bets_router)
app.include_router(odds_router)


@app.exception_handler(PlacementError)
async def placement_error_handler(request: Request, exc: PlacementError):
    request.state.error_code = exc.code
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed ticket bodies answer in the same {error, code} shape as placement failures."""
    errors = []
    for err in exc.errors():
        # ("body", "selections", 0, "market") -> "selections.0.market"
        path = [str(part) for part in err.get("loc", ())[1:]]
        errors.append({"field": ".".join(path) or "body", "message": err.get("msg", "Invalid value.")})
    request.state.error_code = "invalid_request"
    return JSONResponse(
        status_code=422,
        content={"error": "Validation error.", "code": "invalid_request", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Place bet error", "code": "internal_error"})


@app.get("/health")
async def health():
    """Health check -- reports odds provider circuit and API usage."""
    from app.providers.odds_api import odds_provider

    return {
        "status": "degraded" if odds_provider.circuit_open else "healthy",
        "odds_provider": {
            "circuit": odds_provider.circuit_state,
            "usage": odds_provider.api_usage,
        },
    }
