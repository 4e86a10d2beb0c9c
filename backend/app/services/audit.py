"""
Audit logging service for ledger mutations.

Audit rows are added to the caller's session and flushed, never committed
here: they commit or roll back together with the write they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    CLIENT_CREATED = "CLIENT_CREATED"
    CLIENT_DEACTIVATED = "CLIENT_DEACTIVATED"
    CLIENT_DELETED = "CLIENT_DELETED"
    CLIENT_RECONCILED = "CLIENT_RECONCILED"
    CLIENT_FROZEN = "CLIENT_FROZEN"

    TRANSACTION_ADDED = "TRANSACTION_ADDED"
    TRANSACTION_UPDATED = "TRANSACTION_UPDATED"
    TRANSACTION_DELETED = "TRANSACTION_DELETED"
    TRANSACTIONS_IMPORTED = "TRANSACTIONS_IMPORTED"
    SHEET_RENAMED = "SHEET_RENAMED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[str] = None,
    client_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record a ledger event in the current unit of work.

    Args:
        db: Database session (transaction managed by caller)
        action: Action being performed (use AuditAction constants)
        actor_id: Authenticated actor performing the action
        client_id: Ledger owner
        entity_type: "client" or "transaction"
        entity_id: ID of the affected row
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        client_id=client_id,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_client_audit_trail(
    db: AsyncSession,
    client_id: int,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve the audit trail for one client, most recent first.

    Args:
        db: Database session
        client_id: Ledger owner
        action: Filter by action type
        limit: Maximum number of records to return
    """
    query = select(AuditLog).where(AuditLog.client_id == client_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
