# backend/routes/payments.py
import json
import math
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from config import settings
from utils.stripe_client import stripe_client, PaymentProviderError

router = APIRouter(tags=["Payments"])
logger = logging.getLogger(__name__)


def parse_amount(value) -> Optional[int]:
    """Amount in the smallest currency unit, or None when it is not a positive whole number."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    # NaN and infinities (JSON NaN, 1e400, "inf") have no integer value
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value <= 0 or value != int(value):
        return None
    return int(value)


async def _read_json(request: Request) -> dict:
    # A body that is not a JSON object counts as empty
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


@router.post("/create-payment-intent")
async def create_payment_intent(request: Request):
    body = await _read_json(request)

    amount = parse_amount(body.get("amount"))
    if amount is None:
        return JSONResponse(status_code=400, content={"error": "Invalid amount"})

    if not stripe_client.configured:
        logger.error("Payment intent requested but no Stripe secret key is configured")
        return JSONResponse(status_code=500, content={"error": "Stripe secret key not configured on server"})

    try:
        intent = await stripe_client.create_payment_intent(
            amount,
            currency=str(body.get("currency") or settings.DEFAULT_CURRENCY),
            email=str(body.get("email") or ""),
            full_name=str(body.get("fullName") or ""),
            user_id=str(body.get("userId") or ""),
        )
    except PaymentProviderError as e:
        return JSONResponse(status_code=500, content={"error": e.message})

    logger.info("Created payment intent %s for %s", intent.get("id"), amount)
    return {"clientSecret": intent.get("client_secret"), "id": intent.get("id")}


@router.get("/health")
def health():
    return {"ok": True}
