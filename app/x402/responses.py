# app/x402/responses.py
"""
HTTP helpers shared by the x402 endpoints.
"""
from typing import Any, Dict

from fastapi import Request
from starlette.responses import JSONResponse

from app.x402.errors import GatewayError


# Header flag letting clients tell "pay first" apart from a hard failure
X_PAYMENT_REQUIRED_HEADER = "X-402-Payment-Required"


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def create_402_response(payload: Dict[str, Any]) -> JSONResponse:
    """
    Create an HTTP 402 Payment Required response carrying a payment challenge.

    Args:
        payload: The challenge payload (status, protocol, amount, ..., checkId)

    Returns:
        JSONResponse with 402 status and the x402 header flag
    """
    return JSONResponse(
        status_code=402,
        content=payload,
        headers={X_PAYMENT_REQUIRED_HEADER: "true"}
    )


def create_error_response(error: GatewayError) -> JSONResponse:
    """Render a protocol error as a structured JSON response."""
    headers = None
    if error.status_code == 402:
        headers = {X_PAYMENT_REQUIRED_HEADER: "true"}

    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers=headers
    )
