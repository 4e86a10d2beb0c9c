"""
Client Transaction database model.

One row per ledger entry, owned by exactly one client.
"""

from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Enum, Numeric, ForeignKey, Index
from backend.app.db.session import Base
from backend.app.models.client import utcnow
from backend.app.models.ledger_enums import TransactionKind


class ClientTransaction(Base):
    """
    Client Transaction model.

    `entry_balance` is fixed at write time as amount - paid and only
    recomputed when an update touches amount or paid. `client_id` never
    changes after creation.
    """
    __tablename__ = "client_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Owner
    client_id = Column(Integer, ForeignKey('clients.id', ondelete="RESTRICT"), nullable=False, index=True)

    # Entry
    kind = Column(Enum(TransactionKind), nullable=False, index=True)
    transaction_date = Column(Date, nullable=False)

    # Financials
    amount = Column(Numeric(14, 2), nullable=False)
    paid = Column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    entry_balance = Column(Numeric(14, 2), nullable=False)

    # Descriptive metadata (not load-bearing for aggregates)
    particulars = Column(String(255), nullable=True)
    reference = Column(String(100), nullable=True)
    container_code = Column(String(50), nullable=True, index=True)
    sheet_name = Column(String(100), nullable=True, index=True)
    payment_mode = Column(String(30), nullable=True)
    payment_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    # Audit stamping
    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)

    # Timestamps (created_at breaks ties between entries on the same date)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index('ix_client_transactions_ledger_order', 'client_id', 'transaction_date', 'created_at'),
    )

    def __repr__(self):
        return f"<ClientTransaction(id={self.id}, client_id={self.client_id}, kind='{self.kind.value}', amount={self.amount})>"
