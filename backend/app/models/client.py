"""
Client database model for the accounts ledger.

Each client owns a ledger of transactions and carries the aggregate
(total charged, total paid, balance) derived from it.
"""

from datetime import datetime, timezone
from typing import Optional
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, Enum, Numeric
from backend.app.db.session import Base
from backend.app.models.ledger_enums import ClientStatus, CLIENT_TRANSITIONS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    """
    Client model.

    Invariant after every committed ledger write:
        balance == total_charged - total_paid

    The row is the only shared mutable resource on the write path; writers
    lock it for the duration of their database transaction. `version` is an
    optimistic counter that turns any lost update into a StaleDataError.
    """
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Descriptive
    name = Column(String(200), nullable=False, index=True)
    company_name = Column(String(200), nullable=True)
    city = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)

    # Lifecycle
    status = Column(Enum(ClientStatus), default=ClientStatus.ACTIVE, nullable=False, index=True)

    # Aggregate
    total_charged = Column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    total_paid = Column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    balance = Column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    transaction_count = Column(Integer, default=0, nullable=False)

    # Set when a consistency violation halts writes; cleared by reconciliation
    frozen_reason = Column(String(255), nullable=True)

    version = Column(Integer, nullable=False)

    # Audit stamping
    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)

    # Timestamps
    last_active_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_active(self) -> bool:
        return self.status == ClientStatus.ACTIVE

    @property
    def is_frozen(self) -> bool:
        return self.frozen_reason is not None

    def can_transition_to(self, status: ClientStatus) -> bool:
        return status in CLIENT_TRANSITIONS[self.status]

    def transition_to(self, status: ClientStatus) -> None:
        """Move the client along its lifecycle. Raises ValueError on a forbidden move."""
        if not self.can_transition_to(status):
            raise ValueError(f"Client {self.id} cannot move from {self.status.value} to {status.value}")
        self.status = status

    def touch(self, actor_id: Optional[str] = None) -> None:
        """Stamp activity after a transaction write."""
        self.last_active_at = utcnow()
        if actor_id is not None:
            self.updated_by = actor_id

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}', balance={self.balance}, status='{self.status.value}')>"
