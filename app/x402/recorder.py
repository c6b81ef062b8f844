# app/x402/recorder.py
"""
Payment recording for x402 challenges.

Moves a challenge from Created to Paid. Recording is idempotent so retried
provider callbacks succeed, and it never creates a challenge: an unknown id
fails with NotFound.

When a PaymentVerifier is supplied the payment claim must carry a transaction
reference that the verifier accepts against the challenge's pricing snapshot.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from app.x402.errors import BadRequest, PaymentNotVerified
from app.x402.models import Challenge
from app.x402.store import ChallengeStore
from app.x402.verification import PaymentVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentReceipt:
    """Result of recording a payment."""
    challenge: Challenge
    changed: bool
    verified: bool


def record_payment(
    check_id: Optional[str],
    store: ChallengeStore,
    transaction_ref: Optional[str] = None,
    verifier: Optional[PaymentVerifier] = None
) -> PaymentReceipt:
    """
    Record that a challenge has been paid.

    Args:
        check_id: Challenge id the payment is for
        store: Challenge store owning the record
        transaction_ref: Optional payment proof (transaction signature)
        verifier: Optional verifier; when set, the proof is checked on-chain

    Returns:
        PaymentReceipt with the resulting snapshot and whether the state changed

    Raises:
        BadRequest: If check_id is missing, or a proof is required but absent
        NotFound: If the challenge is unknown or expired
        PaymentNotVerified: If the verifier rejects the proof or it was used before
        InternalError: If verification could not be completed
    """
    if not check_id or not check_id.strip():
        raise BadRequest("checkId required")

    transaction_ref = transaction_ref.strip() if transaction_ref else None

    # Unknown ids fail here, before any verifier call
    challenge = store.get(check_id)

    if challenge.state.is_paid:
        logger.info(f"Payment for challenge {check_id} already recorded")
        return PaymentReceipt(challenge=challenge, changed=False, verified=False)

    verified = False
    if verifier is not None:
        if not transaction_ref:
            raise BadRequest("transactionRef required")

        result = verifier.verify(
            transaction_ref,
            challenge.pricing,
            not_before=challenge.created_at
        )
        if not result.is_valid:
            logger.warning(
                f"Payment for challenge {check_id} not verified: {result.invalid_reason}"
            )
            raise PaymentNotVerified(result.invalid_reason)
        verified = True

    challenge, changed = store.mark_paid(check_id, transaction_ref)
    return PaymentReceipt(challenge=challenge, changed=changed, verified=verified)
