# app/x402/audit.py
"""
Audit logging for x402 challenges and payments.

This module logs every protocol event for:
- Dispute resolution (who paid for which challenge, with which transaction)
- Financial reconciliation
- Debugging rejected payments and upstream failures

Log format: JSON lines (one event per line)
Log location: Configured via X402_AUDIT_LOG_PATH
Toggle: X402_AUDIT_ENABLED

Events logged:
- Challenge issued (checkId, price, token, network, recipient)
- Payment recorded (checkId, transaction reference, whether state changed)
- Payment rejected (checkId, reason)
- Report redeemed / redemption blocked (checkId, risk or reason)
- Payment forwarded / upstream failed (endpoint, status)
- Error (type, context)
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional
from enum import Enum

from app.core.config import settings
from app.x402.models import Pricing

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of audit events that can be logged."""
    CHALLENGE_ISSUED = "challenge_issued"
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_REJECTED = "payment_rejected"
    REPORT_REDEEMED = "report_redeemed"
    REDEMPTION_BLOCKED = "redemption_blocked"
    PAYMENT_FORWARDED = "payment_forwarded"
    UPSTREAM_FAILED = "upstream_failed"
    ERROR = "error"


def generate_request_id() -> str:
    """Generate a unique request ID for tracking."""
    return str(uuid.uuid4())[:8]


def get_audit_log_path() -> Path:
    """Get the path to the audit log file."""
    return Path(settings.X402_AUDIT_LOG_PATH)


def create_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    client_ip: Optional[str] = None,
    check_id: Optional[str] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Create an audit event dictionary.

    Args:
        event_type: Type of event to log
        data: Event-specific data
        client_ip: Client IP address (if available)
        check_id: Challenge the event concerns (if any)
        request_id: Unique request identifier (if available)

    Returns:
        A structured event ready to be written to the audit log
    """
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type.value,
        "request_id": request_id or generate_request_id(),
        "client_ip": client_ip,
        "check_id": check_id,
        "data": data
    }


def log_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    client_ip: Optional[str] = None,
    check_id: Optional[str] = None,
    request_id: Optional[str] = None
) -> Optional[str]:
    """
    Append an audit event to the x402 audit log.

    Failures to write are logged and never propagate to the caller.

    Returns:
        The request_id used for this event, or None if disabled or on error
    """
    if not settings.X402_AUDIT_ENABLED:
        return None

    event = create_audit_event(
        event_type=event_type,
        data=data,
        client_ip=client_ip,
        check_id=check_id,
        request_id=request_id
    )

    try:
        log_path = get_audit_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        with open(log_path, "a") as f:
            f.write(json.dumps(event) + "\n")

        logger.debug(f"Audit event logged: {event_type.value} [{event['request_id']}]")
        return event["request_id"]

    except OSError as e:
        logger.error(f"Failed to write audit event: {e}")
        return None


# Convenience functions for specific event types

def log_challenge_issued(
    client_ip: Optional[str],
    check_id: str,
    pricing: Pricing
) -> Optional[str]:
    """Log a 402 challenge issuance."""
    return log_audit_event(
        event_type=AuditEventType.CHALLENGE_ISSUED,
        data={
            "amount": pricing.amount,
            "token": pricing.token,
            "network": pricing.network,
            "recipient": pricing.recipient,
        },
        client_ip=client_ip,
        check_id=check_id
    )


def log_payment_recorded(
    client_ip: Optional[str],
    check_id: str,
    transaction_ref: Optional[str],
    changed: bool,
    verified: bool
) -> Optional[str]:
    """Log an accepted payment confirmation (including idempotent repeats)."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_RECORDED,
        data={
            "transaction_ref": transaction_ref,
            "state_changed": changed,
            "verified": verified,
        },
        client_ip=client_ip,
        check_id=check_id
    )


def log_payment_rejected(
    client_ip: Optional[str],
    check_id: Optional[str],
    reason: str,
    transaction_ref: Optional[str] = None
) -> Optional[str]:
    """Log a payment confirmation that was refused."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_REJECTED,
        data={
            "reason": reason,
            "transaction_ref": transaction_ref,
        },
        client_ip=client_ip,
        check_id=check_id
    )


def log_report_redeemed(
    client_ip: Optional[str],
    check_id: str,
    risk: str
) -> Optional[str]:
    """Log a successful report release."""
    return log_audit_event(
        event_type=AuditEventType.REPORT_REDEEMED,
        data={"risk": risk},
        client_ip=client_ip,
        check_id=check_id
    )


def log_redemption_blocked(
    client_ip: Optional[str],
    check_id: Optional[str],
    reason: str
) -> Optional[str]:
    """Log a redemption attempt refused by the gate."""
    return log_audit_event(
        event_type=AuditEventType.REDEMPTION_BLOCKED,
        data={"reason": reason},
        client_ip=client_ip,
        check_id=check_id
    )


def log_payment_forwarded(
    client_ip: Optional[str],
    endpoint: str,
    amount: Optional[str],
    network: Optional[str],
    currency: Optional[str]
) -> Optional[str]:
    """Log a payment request successfully relayed upstream."""
    return log_audit_event(
        event_type=AuditEventType.PAYMENT_FORWARDED,
        data={
            "endpoint": endpoint,
            "amount": amount,
            "network": network,
            "currency": currency,
        },
        client_ip=client_ip
    )


def log_upstream_failed(
    client_ip: Optional[str],
    endpoint: str,
    status_code: Optional[int],
    kind: str
) -> Optional[str]:
    """Log a forwarded payment that failed upstream or in transit."""
    return log_audit_event(
        event_type=AuditEventType.UPSTREAM_FAILED,
        data={
            "endpoint": endpoint,
            "status_code": status_code,
            "kind": kind,
        },
        client_ip=client_ip
    )


def log_error(
    client_ip: Optional[str],
    error_type: str,
    error_message: str,
    context: Optional[Dict[str, Any]] = None,
    check_id: Optional[str] = None
) -> Optional[str]:
    """Log an unexpected error."""
    return log_audit_event(
        event_type=AuditEventType.ERROR,
        data={
            "error_type": error_type,
            "error_message": error_message,
            "context": context or {},
        },
        client_ip=client_ip,
        check_id=check_id
    )


def read_audit_log(
    max_entries: Optional[int] = 100,
    event_type: Optional[AuditEventType] = None,
    check_id: Optional[str] = None
) -> list:
    """
    Read entries from the audit log.

    Args:
        max_entries: Maximum number of entries to return (None for all)
        event_type: Filter by event type (optional)
        check_id: Filter by challenge id (optional)

    Returns:
        List of audit events (most recent first)
    """
    log_path = get_audit_log_path()
    if not log_path.exists():
        return []

    events = []
    try:
        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if event_type and event.get("event_type") != event_type.value:
                    continue
                if check_id and event.get("check_id") != check_id:
                    continue
                events.append(event)
    except OSError as e:
        logger.error(f"Failed to read audit log: {e}")
        return []

    # Most recent first, limited to max_entries
    return list(reversed(events))[:max_entries]


def get_audit_stats() -> Dict[str, Any]:
    """
    Get statistics from the audit log.

    Returns:
        Dict with event counts and date range
    """
    log_path = get_audit_log_path()
    if not log_path.exists():
        return {
            "total_events": 0,
            "events_by_type": {},
            "log_path": str(log_path),
            "log_exists": False,
        }

    events_by_type: Dict[str, int] = {}
    total = 0
    first_timestamp = None
    last_timestamp = None

    for event in reversed(read_audit_log(max_entries=None)):
        total += 1
        event_type = event.get("event_type", "unknown")
        events_by_type[event_type] = events_by_type.get(event_type, 0) + 1

        timestamp = event.get("timestamp")
        if timestamp:
            if first_timestamp is None:
                first_timestamp = timestamp
            last_timestamp = timestamp

    return {
        "total_events": total,
        "events_by_type": events_by_type,
        "first_event": first_timestamp,
        "last_event": last_timestamp,
        "log_path": str(log_path),
        "log_exists": True,
    }
