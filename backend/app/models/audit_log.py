"""
Audit Log Database Model.

Tracks every committed ledger mutation for statements and investigations.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for ledger writes.

    Rows are written inside the same database transaction as the mutation
    they describe, so a rolled-back write leaves no audit trail behind.

    Events logged:
    - CLIENT_CREATED / CLIENT_DEACTIVATED / CLIENT_DELETED
    - TRANSACTION_ADDED / TRANSACTION_UPDATED / TRANSACTION_DELETED
    - TRANSACTIONS_IMPORTED / SHEET_RENAMED
    - CLIENT_FROZEN / CLIENT_RECONCILED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Authenticated actor supplied by the auth service (None for system actions)
    actor_id = Column(String(100), index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Ledger owner; not a foreign key so hard-deleted clients keep their trail
    client_id = Column(Integer, index=True, nullable=True)

    # Affected row
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, client={self.client_id})>"
