# paygate/x402/audit.py
"""
Audit trail for settlement activity.

Settlement has no idempotency key and no server-side ledger, so this
JSON-lines log is the only record that a transfer was attempted, what the
facilitator answered and which credential was minted for it.

Log format: JSON lines (one event per line)
Log location: AUDIT_LOG_PATH of the application's settings, passed in as
log_path; logging is skipped entirely when it is unset.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from paygate.core.config import Settings

logger = logging.getLogger(__name__)

PathLike = Union[str, Path, None]


class AuditEventType(Enum):
    """Types of audit events that can be logged."""
    PAYMENT_REQUIRED_SENT = "payment_required_sent"
    SETTLEMENT_REQUESTED = "settlement_requested"
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_FAILED = "payment_failed"
    CREDENTIAL_ISSUED = "credential_issued"
    ERROR = "error"


def generate_request_id() -> str:
    """Generate a short id correlating the events of one request."""
    return str(uuid.uuid4())[:8]


def get_audit_log_path(settings: Settings) -> Optional[Path]:
    """Path of the audit log for these settings, or None when auditing is disabled."""
    if not settings.AUDIT_LOG_PATH:
        return None
    return Path(settings.AUDIT_LOG_PATH)


def create_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    resource: Optional[str] = None,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type.value,
        "request_id": request_id or generate_request_id(),
        "resource": resource,
        "data": data
    }


def log_audit_event(
    event_type: AuditEventType,
    data: Dict[str, Any],
    resource: Optional[str] = None,
    request_id: Optional[str] = None,
    log_path: PathLike = None
) -> Optional[str]:
    """
    Append an event to the audit log at log_path.

    Write failures are logged and reported as None; they never fail the request.

    Returns:
        The request_id used for this event, or None if nothing was written
    """
    if not log_path:
        return None
    log_path = Path(log_path)

    event = create_audit_event(event_type, data, resource=resource, request_id=request_id)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a") as f:
            f.write(json.dumps(event) + "\n")
        logger.debug(f"Audit event logged: {event_type.value} [{event['request_id']}]")
        return event["request_id"]
    except OSError as e:
        logger.error(f"Failed to write audit event: {e}")
        return None


def log_payment_required_sent(
    resource: str,
    network: str,
    pay_to: str,
    request_id: Optional[str] = None,
    log_path: PathLike = None
) -> Optional[str]:
    return log_audit_event(
        AuditEventType.PAYMENT_REQUIRED_SENT,
        {"network": network, "pay_to": pay_to},
        resource=resource,
        request_id=request_id,
        log_path=log_path
    )


def log_settlement_requested(
    resource: str,
    network: Optional[str],
    request_id: Optional[str] = None,
    log_path: PathLike = None
) -> Optional[str]:
    return log_audit_event(
        AuditEventType.SETTLEMENT_REQUESTED,
        {"network": network},
        resource=resource,
        request_id=request_id,
        log_path=log_path
    )


def log_payment_settled(
    resource: str,
    transaction: Optional[str],
    network: Optional[str],
    payer: Optional[str] = None,
    request_id: Optional[str] = None,
    log_path: PathLike = None
) -> Optional[str]:
    return log_audit_event(
        AuditEventType.PAYMENT_SETTLED,
        {"transaction": transaction, "network": network, "payer": payer},
        resource=resource,
        request_id=request_id,
        log_path=log_path
    )


def log_payment_failed(
    resource: str,
    status_code: int,
    error: Optional[str],
    request_id: Optional[str] = None,
    log_path: PathLike = None
) -> Optional[str]:
    return log_audit_event(
        AuditEventType.PAYMENT_FAILED,
        {"status_code": status_code, "error": error},
        resource=resource,
        request_id=request_id,
        log_path=log_path
    )


def log_credential_issued(
    resource: str,
    settlement_id: Optional[str],
    request_id: Optional[str] = None,
    log_path: PathLike = None
) -> Optional[str]:
    return log_audit_event(
        AuditEventType.CREDENTIAL_ISSUED,
        {"settlement_id": settlement_id},
        resource=resource,
        request_id=request_id,
        log_path=log_path
    )


def read_audit_log(log_path: PathLike, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Read audit events, newest last; the last `limit` events when limit is given."""
    if not log_path or not Path(log_path).exists():
        return []

    events = []
    with open(log_path) as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning("Skipping malformed audit log line")
    if limit is not None:
        return events[-limit:]
    return events
