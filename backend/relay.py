# backend/relay.py
# Standalone payment-intent relay. Also mounted under /relay by main.py.
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from routes.payments import router as payments_router

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _masked_key() -> str:
    key = settings.STRIPE_SECRET_KEY
    if not key:
        return "<missing>"
    return f"{key[:7]}...{key[-4:]}" if len(key) > 11 else "***"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Payment relay starting, Stripe key: %s", _masked_key())
    yield


app = FastAPI(title="Payment Relay", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def permissive_cors(request: Request, call_next):
    # Pre-flight on any path
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(StarletteHTTPException)
async def relay_http_error(request: Request, exc: StarletteHTTPException):
    # Unknown paths and unsupported methods look the same to callers
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content={"error": "Not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


app.include_router(payments_router)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=settings.LOG_LEVEL)
    uvicorn.run(app, host="0.0.0.0", port=settings.RELAY_PORT)
