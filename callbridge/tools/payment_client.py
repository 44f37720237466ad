import httpx
import logging
from typing import Optional
from pydantic import ValidationError
from callbridge.config.environment import config
from callbridge.tools.schemas import PaymentRequest, PaymentResponse

logger = logging.getLogger(__name__)


class PaymentTransportError(RuntimeError):
    """The payment endpoint couldn't be reached or didn't answer in the expected shape."""


class PaymentClient:
    """
    Transport layer for the internal card-payment endpoint.
    """
    def __init__(
        self,
        endpoint_url: Optional[str] = None,
        anon_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._endpoint_url = endpoint_url
        self._anon_key = anon_key
        self.timeout = timeout if timeout is not None else float(config.get("payments.timeout_seconds", 30.0))
        self._transport = transport

    @property
    def endpoint_url(self) -> Optional[str]:
        return self._endpoint_url or config.PAYMENT_ENDPOINT_URL

    def _headers(self):
        headers = {"Content-Type": "application/json"}
        anon_key = self._anon_key or config.SUPABASE_ANON_KEY
        if anon_key:
            headers["apikey"] = anon_key
            headers["Authorization"] = f"Bearer {anon_key}"
        return headers

    async def charge(self, request: PaymentRequest) -> PaymentResponse:
        """
        POSTs the card details and returns the endpoint's verdict.
        The body is parsed whatever the HTTP status; failures carry {success: false, error}.
        """
        url = self.endpoint_url
        if not url:
            raise PaymentTransportError("Payment endpoint is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=request.model_dump(), headers=self._headers())
        except httpx.TimeoutException as e:
            logger.error(f"Payment request timed out for invoice {request.invoice_id}")
            raise PaymentTransportError("Payment request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Payment request failed for invoice {request.invoice_id}: {e}")
            raise PaymentTransportError(str(e)) from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Payment endpoint returned non-JSON (HTTP {response.status_code})")
            raise PaymentTransportError(f"Invalid response from payment endpoint (HTTP {response.status_code})") from e

        try:
            result = PaymentResponse.model_validate(body)
        except ValidationError as e:
            raise PaymentTransportError("Unexpected payment response shape") from e

        logger.info(
            f"💳 Payment result for invoice {request.invoice_id}: "
            f"success={result.success} status={result.status} (HTTP {response.status_code})"
        )
        return result
