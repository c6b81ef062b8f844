# app/services/report.py
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

BASE_SCORE = 80
MIN_BIO_LENGTH = 10

# Deductions applied by the heuristic checks
NO_HANDLE_PENALTY = 10
SHORT_BIO_PENALTY = 10
EXTERNAL_CONTACT_PENALTY = 15

HIGH_RISK_BELOW = 40
MEDIUM_RISK_AT_OR_BELOW = 60


def classify_risk(score: int) -> str:
    """Map a score to Low/Medium/High risk."""
    if score < HIGH_RISK_BELOW:
        return "High"
    if score <= MEDIUM_RISK_AT_OR_BELOW:
        return "Medium"
    return "Low"


def generate_report(submission: Dict[str, Any]) -> Dict[str, Any]:
    """
    Score a submitted profile with simple trust heuristics.

    Starts from a base score and deducts for a missing public handle, a
    missing or very short bio, and a bio that moves the conversation to
    Telegram.

    Args:
        submission: Profile fields (name, handle, platform, bio)

    Returns:
        Dict with score (int), risk ("Low" | "Medium" | "High") and reasons (list of str)
    """
    handle = submission.get("handle") or ""
    bio = submission.get("bio") or ""

    score = BASE_SCORE
    reasons: List[str] = []

    if not handle:
        score -= NO_HANDLE_PENALTY
        reasons.append("No public handle provided.")

    if len(bio) < MIN_BIO_LENGTH:
        score -= SHORT_BIO_PENALTY
        reasons.append("Bio is too short or missing.")

    if "telegram" in bio.lower():
        score -= EXTERNAL_CONTACT_PENALTY
        reasons.append("External contact in bio (Telegram).")

    risk = classify_risk(score)
    logger.debug(f"Generated report: score={score} risk={risk} ({len(reasons)} findings)")

    return {
        "score": score,
        "risk": risk,
        "reasons": reasons,
    }


def get_report_generator():
    """Report generator used by the redemption endpoint (overridable as a FastAPI dependency)."""
    return generate_report
