# app/x402/errors.py
"""
Error taxonomy for the x402 challenge protocol.

Every failure the gateway can report is a GatewayError subclass carrying the
HTTP status code it maps to and a stable machine-readable ``kind``. Core
components raise these; the API layer renders them with
app.x402.responses.create_error_response.
"""
from typing import Any, Dict, Optional


class GatewayError(Exception):
    """Base class for all protocol errors surfaced to callers."""

    status_code: int = 500
    kind: str = "InternalError"
    default_message: str = "internal error"

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.extra = extra or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Structured body for the error response."""
        body = {"error": self.message, "kind": self.kind}
        body.update(self.extra)
        return body


class BadRequest(GatewayError):
    """Malformed request or missing required field."""
    status_code = 400
    kind = "BadRequest"
    default_message = "bad request"


class NotFound(GatewayError):
    """Unknown or expired challenge id."""
    status_code = 404
    kind = "NotFound"
    default_message = "not found"


class PaymentRequired(GatewayError):
    """Challenge exists but has not been paid."""
    status_code = 402
    kind = "PaymentRequired"
    default_message = "not paid"


class PaymentNotVerified(GatewayError):
    """A payment claim failed on-chain verification."""
    status_code = 402
    kind = "PaymentNotVerified"
    default_message = "payment could not be verified"


class ChallengeAlreadyPaid(GatewayError):
    """Payment terms were requested for a challenge that is already paid."""
    status_code = 409
    kind = "ChallengeAlreadyPaid"
    default_message = "challenge already paid"


class AlreadyRedeemed(GatewayError):
    """Single-use challenge was already exchanged for its report."""
    status_code = 410
    kind = "AlreadyRedeemed"
    default_message = "report already redeemed"


class UpstreamPaymentFailed(GatewayError):
    """The upstream payment processor returned a definite rejection."""
    status_code = 500
    kind = "UpstreamPaymentFailed"
    default_message = "upstream payment failed"

    def __init__(self, upstream: Optional[Dict[str, Any]] = None, status: Optional[int] = None):
        self.upstream = upstream if upstream is not None else {}
        self.upstream_status = status
        super().__init__(extra={"upstream": self.upstream})


class InternalError(GatewayError):
    """Unexpected fault: network error, timeout, or unhandled exception."""
    status_code = 500
    kind = "InternalError"
    default_message = "internal error"
