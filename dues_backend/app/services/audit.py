"""
Audit logging service for billing actions.

Audit rows are written inside the caller's transaction, so an aborted
transition leaves no audit trace either.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from dues_backend.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    CLIENT_CREATED = "CLIENT_CREATED"
    CLIENT_RATES_CHANGED = "CLIENT_RATES_CHANGED"

    MEETING_LOGGED = "MEETING_LOGGED"
    MEETING_PROOF_ATTACHED = "MEETING_PROOF_ATTACHED"
    MEETING_STATUS_CHANGED = "MEETING_STATUS_CHANGED"
    DUES_RECOMPUTED = "DUES_RECOMPUTED"

    DUE_ADJUSTMENT_CREATED = "DUE_ADJUSTMENT_CREATED"
    DUE_ADJUSTMENT_DELETED = "DUE_ADJUSTMENT_DELETED"

    ADVANCE_CREATED = "ADVANCE_CREATED"
    ADVANCE_DEACTIVATED = "ADVANCE_DEACTIVATED"

    PAYMENT_SUBMITTED = "PAYMENT_SUBMITTED"
    PAYMENT_APPROVED = "PAYMENT_APPROVED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    PAYMENT_REJECTION_RESOLVED = "PAYMENT_REJECTION_RESOLVED"
    PAYMENT_DELETED = "PAYMENT_DELETED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    client_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log a billing event to the audit log.

    Args:
        db: Database session (caller commits)
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        client_id: Client whose ledger is affected
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        client_id=client_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    client_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if client_id:
        query = query.where(AuditLog.client_id == client_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
