# backend/utils/stripe_client.py
import httpx
import logging
from typing import Optional
from config import settings

logger = logging.getLogger(__name__)


class PaymentProviderError(Exception):
    """Raised when Stripe rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StripeClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Custom transport lets tests answer requests without the network
        self._transport = transport

    @property
    def secret_key(self) -> str:
        return settings.STRIPE_SECRET_KEY

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Stripe-Version": settings.STRIPE_API_VERSION,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=settings.STRIPE_API_URL, transport=self._transport)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        # Stripe wraps failures as {"error": {"message": ..., "type": ...}}
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return response.text or f"Stripe request failed with status {response.status_code}"

    async def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        if not self.configured:
            raise PaymentProviderError("Stripe secret key not configured on server")
        async with self._client() as client:
            try:
                response = await client.request(method, path, data=data, headers=self._headers())
            except httpx.RequestError as e:
                logger.error(f"Stripe connection error: {e}")
                raise PaymentProviderError(f"Could not reach payment provider: {e}") from e

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.error(f"Stripe {method} {path} failed ({response.status_code}): {message}")
            raise PaymentProviderError(message, status_code=response.status_code)
        return response.json()

    async def create_payment_intent(
        self,
        amount: int,
        currency: str = "usd",
        email: str = "",
        full_name: str = "",
        user_id: str = "",
    ) -> dict:
        # Card-only intent; the browser confirms it with the returned client secret
        form = {
            "amount": str(amount),
            "currency": currency,
            "payment_method_types[]": "card",
            "metadata[email]": email or "",
            "metadata[fullName]": full_name or "",
            "metadata[userId]": user_id or "",
            "description": f"Payment for {full_name}" if full_name else "Payment",
        }
        return await self._request("POST", "/v1/payment_intents", data=form)

    async def retrieve_payment_intent(self, intent_id: str) -> dict:
        return await self._request("GET", f"/v1/payment_intents/{intent_id}")


stripe_client = StripeClient()
