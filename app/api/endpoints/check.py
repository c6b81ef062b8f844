# app/api/endpoints/check.py
from fastapi import APIRouter, Depends, Path, Query, Request, status
from typing import Any, Optional
import logging

from app.api.models.check import CheckSubmission, PaymentChallengeResponse, ReportResponse
from app.api.models.payment import ErrorResponse
from app.services.report import get_report_generator
from app.x402 import audit
from app.x402.errors import GatewayError, InternalError
from app.x402.gate import ReportGenerator, redeem
from app.x402.issuer import get_payment_challenge, issue_challenge
from app.x402.responses import create_402_response, create_error_response, get_client_ip
from app.x402.store import ChallengeStore, get_challenge_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/check",
    status_code=status.HTTP_402_PAYMENT_REQUIRED,
    response_model=PaymentChallengeResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Submit a Profile and Receive a Payment Challenge"
)
def create_check(
    submission: CheckSubmission,
    request: Request,
    store: ChallengeStore = Depends(get_challenge_store)
) -> Any:
    """
    Submits a profile for a vibe check and returns an x402 payment challenge.

    The challenge is stored before it is returned. The response is always
    HTTP 402 with an `X-402-Payment-Required: true` header and a body whose
    `checkId` is used to record payment and redeem the report.

    Raises:
        400 if the submission is malformed
    """
    client_ip = get_client_ip(request)

    try:
        challenge, payload = issue_challenge(submission.model_dump(), store)
    except Exception as e:
        logger.error(f"Failed to issue challenge: {e}", exc_info=True)
        audit.log_error(client_ip, type(e).__name__, str(e), {"operation": "issue"})
        return create_error_response(InternalError())

    audit.log_challenge_issued(client_ip, challenge.id, challenge.pricing)
    return create_402_response(payload)


@router.get(
    "/check/{check_id}/payment",
    status_code=status.HTTP_402_PAYMENT_REQUIRED,
    response_model=PaymentChallengeResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Re-fetch the Payment Challenge of an Unpaid Check"
)
def get_check_payment(
    check_id: str = Path(..., description="The checkId returned when the check was created."),
    store: ChallengeStore = Depends(get_challenge_store)
) -> Any:
    """
    Returns the payment terms of an existing unpaid challenge, identical to
    the terms quoted when it was created.
    """
    try:
        payload = get_payment_challenge(check_id, store)
    except GatewayError as e:
        return create_error_response(e)

    return create_402_response(payload)


@router.get(
    "/check",
    response_model=ReportResponse,
    responses={
        402: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
    },
    summary="Redeem a Paid Check for its Report"
)
def get_check_report(
    request: Request,
    checkId: Optional[str] = Query(None, description="The checkId of a paid check."),
    store: ChallengeStore = Depends(get_challenge_store),
    report_generator: ReportGenerator = Depends(get_report_generator)
) -> Any:
    """
    Returns the vibe check report once the challenge has been paid.

    Raises:
        404 if the checkId is unknown or expired
        402 if the check has not been paid yet
        410 if single-use redemption is enabled and the report was already redeemed
    """
    client_ip = get_client_ip(request)

    try:
        report = redeem(checkId, store, report_generator)
    except GatewayError as e:
        logger.info(f"Redemption of {checkId} blocked: {e.kind}")
        audit.log_redemption_blocked(client_ip, checkId, e.kind)
        return create_error_response(e)
    except Exception as e:
        logger.error(f"Unexpected error redeeming check {checkId}: {e}", exc_info=True)
        audit.log_error(client_ip, type(e).__name__, str(e), {"operation": "redeem"}, check_id=checkId)
        return create_error_response(InternalError())

    audit.log_report_redeemed(client_ip, checkId, report["risk"])
    return report
