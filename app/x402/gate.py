# app/x402/gate.py
"""
Redemption gate: releases a challenge's report only once it is paid.

The challenge state is read from the store on every call. Under single-use
redemption the report is generated first and the Paid -> Redeemed
transition then happens atomically in the store, so a failing generator does
not use up the challenge and two concurrent redemptions cannot both succeed.
"""
import logging
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.x402.errors import AlreadyRedeemed, NotFound, PaymentRequired
from app.x402.models import ChallengeState
from app.x402.store import ChallengeStore

logger = logging.getLogger(__name__)

ReportGenerator = Callable[[Dict[str, Any]], Dict[str, Any]]

# Submission fields echoed back with the report
PROFILE_FIELDS = ("name", "handle", "platform")


def redeem(
    check_id: Optional[str],
    store: ChallengeStore,
    report_generator: ReportGenerator,
    single_use: Optional[bool] = None
) -> Dict[str, Any]:
    """
    Exchange a paid challenge for its report.

    Args:
        check_id: Challenge id to redeem
        store: Challenge store owning the record
        report_generator: Pure function from submission to report
        single_use: Redeem at most once. Uses X402_SINGLE_USE_REDEMPTION if not provided.

    Returns:
        The generated report with the submitted profile attached

    Raises:
        NotFound: If the id is missing, unknown or expired
        PaymentRequired: If the challenge has not been paid
        AlreadyRedeemed: If single-use redemption already happened
    """
    if not check_id:
        raise NotFound()

    if single_use is None:
        single_use = settings.X402_SINGLE_USE_REDEMPTION

    challenge = store.get(check_id)
    if challenge.state is ChallengeState.CREATED:
        raise PaymentRequired()
    if single_use and challenge.state is ChallengeState.REDEEMED:
        raise AlreadyRedeemed()

    submission = dict(challenge.submission)
    report = dict(report_generator(submission))
    report["profile"] = {field: submission.get(field) for field in PROFILE_FIELDS}

    # Re-checked under the record lock; a concurrent redemption may have won
    if single_use:
        challenge = store.mark_redeemed(check_id)

    logger.info(f"Releasing report for challenge {check_id} ({challenge.state.value})")
    return report
