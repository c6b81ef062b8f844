# app/x402/forwarder.py
"""
Payment forwarding relay.

Passes a payment-initiation request to an upstream x402 payment processor and
returns its JSON result. The relay never touches challenge state; callers
record the payment separately once they hold a successful result.

Two failure modes are kept apart:
- UpstreamPaymentFailed: the upstream answered with a non-success status
- InternalError: no answer could be obtained (timeout, DNS, connection reset)
"""
import logging
from typing import Any, Dict, Optional

import requests
from requests.exceptions import RequestException

from app.core.config import settings
from app.x402.errors import BadRequest, InternalError, UpstreamPaymentFailed

logger = logging.getLogger(__name__)


def _parse_upstream_body(response: requests.Response) -> Dict[str, Any]:
    """Best-effort JSON decode; non-JSON bodies become an empty object."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"data": body}


def forward_payment(
    payment_endpoint: Optional[str],
    amount: Optional[Any] = None,
    receiver: Optional[str] = None,
    network: Optional[str] = None,
    currency: Optional[str] = None,
    timeout: Optional[float] = None
) -> Dict[str, Any]:
    """
    Forward a payment request to an upstream processor.

    Args:
        payment_endpoint: Upstream URL accepting {amount, receiver, network, currency}
        amount: Amount to pay
        receiver: Recipient address
        network: Network identifier
        currency: Currency/token symbol
        timeout: Upstream timeout in seconds. Uses X402_FORWARD_TIMEOUT_SECONDS if not provided.

    Returns:
        The upstream JSON body

    Raises:
        BadRequest: If payment_endpoint is missing
        UpstreamPaymentFailed: If the upstream returns a non-success status
        InternalError: If the upstream could not be reached or timed out
    """
    if not payment_endpoint or not payment_endpoint.strip():
        raise BadRequest("payment_endpoint required")

    if timeout is None:
        timeout = settings.X402_FORWARD_TIMEOUT_SECONDS

    request_body = {
        "amount": amount,
        "receiver": receiver,
        "network": network,
        "currency": currency,
    }

    try:
        response = requests.post(
            payment_endpoint,
            json=request_body,
            headers={"Content-Type": "application/json"},
            timeout=timeout
        )
    except RequestException as e:
        logger.error(f"Error forwarding payment to {payment_endpoint}: {e}")
        raise InternalError() from e

    upstream = _parse_upstream_body(response)

    if not response.ok:
        logger.warning(
            f"Upstream payment endpoint {payment_endpoint} rejected payment "
            f"with status {response.status_code}"
        )
        raise UpstreamPaymentFailed(upstream=upstream, status=response.status_code)

    logger.info(f"Payment forwarded to {payment_endpoint} (status {response.status_code})")
    return upstream
