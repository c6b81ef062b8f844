# app/api/endpoints/payment.py
from fastapi import APIRouter, Depends, Request
from typing import Any, Optional
import logging

from app.api.models.payment import (
    ErrorResponse,
    ForwardPaymentRequest,
    ForwardPaymentResponse,
    PaymentRecordRequest,
    PaymentRecordResponse,
)
from app.x402 import audit
from app.x402.errors import GatewayError, InternalError, UpstreamPaymentFailed
from app.x402.forwarder import forward_payment
from app.x402.recorder import record_payment
from app.x402.responses import create_error_response, get_client_ip
from app.x402.store import ChallengeStore, get_challenge_store
from app.x402.verification import PaymentVerifier, get_payment_verifier

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/pay",
    response_model=PaymentRecordResponse,
    responses={
        400: {"model": ErrorResponse},
        402: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Record Payment for a Check"
)
def record_check_payment(
    payment: PaymentRecordRequest,
    request: Request,
    store: ChallengeStore = Depends(get_challenge_store),
    verifier: Optional[PaymentVerifier] = Depends(get_payment_verifier)
) -> Any:
    """
    Marks a check as paid so its report can be redeemed.

    Recording is idempotent: repeating it for an already paid check succeeds
    without changing anything. When payment verification is enabled the
    request must include the transaction signature, which is checked on-chain
    against the terms quoted for the check.

    Raises:
        400 if checkId is missing (or transactionRef, when verification is enabled)
        404 if the checkId is unknown or expired
        402 if the payment could not be verified
        500 if the verification network could not be reached
    """
    client_ip = get_client_ip(request)

    try:
        receipt = record_payment(
            payment.checkId,
            store,
            transaction_ref=payment.transactionRef,
            verifier=verifier
        )
    except GatewayError as e:
        logger.warning(f"Payment for check {payment.checkId} rejected: {e.kind}: {e.message}")
        audit.log_payment_rejected(client_ip, payment.checkId, e.kind, payment.transactionRef)
        return create_error_response(e)
    except Exception as e:
        logger.error(f"Unexpected error recording payment for {payment.checkId}: {e}", exc_info=True)
        audit.log_error(client_ip, type(e).__name__, str(e), {"operation": "record_payment"}, check_id=payment.checkId)
        return create_error_response(InternalError())

    audit.log_payment_recorded(
        client_ip,
        receipt.challenge.id,
        receipt.challenge.transaction_ref,
        changed=receipt.changed,
        verified=receipt.verified
    )
    return PaymentRecordResponse(ok=True)


@router.post(
    "/x402-pay",
    response_model=ForwardPaymentResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    summary="Forward a Payment to an Upstream x402 Processor"
)
def forward_check_payment(
    forward_request: ForwardPaymentRequest,
    request: Request
) -> Any:
    """
    Relays a payment request to an upstream x402 payment endpoint and returns
    its JSON result.

    This does not mark any check as paid; call `/pay` once the upstream
    payment has succeeded.

    Raises:
        400 if payment_endpoint is missing
        500 if the upstream rejected the payment (kind UpstreamPaymentFailed,
            upstream body attached) or could not be reached (kind InternalError)
    """
    client_ip = get_client_ip(request)
    endpoint = forward_request.payment_endpoint

    if forward_request.pay_to and not forward_request.receiver:
        logger.warning("x402-pay: 'pay_to' is deprecated, use 'receiver'")

    try:
        upstream = forward_payment(
            endpoint,
            amount=forward_request.amount,
            receiver=forward_request.get_receiver(),
            network=forward_request.network,
            currency=forward_request.currency
        )
    except UpstreamPaymentFailed as e:
        audit.log_upstream_failed(client_ip, endpoint, e.upstream_status, e.kind)
        return create_error_response(e)
    except InternalError as e:
        audit.log_upstream_failed(client_ip, endpoint, None, e.kind)
        return create_error_response(e)
    except GatewayError as e:
        return create_error_response(e)
    except Exception as e:
        logger.error(f"x402-pay error: {e}", exc_info=True)
        audit.log_error(client_ip, type(e).__name__, str(e), {"operation": "forward_payment"})
        return create_error_response(InternalError())

    audit.log_payment_forwarded(
        client_ip,
        endpoint,
        None if forward_request.amount is None else str(forward_request.amount),
        forward_request.network,
        forward_request.currency
    )
    return ForwardPaymentResponse(ok=True, upstream=upstream)
