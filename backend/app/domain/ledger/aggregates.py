"""
Aggregate Maintainer (Domain Logic).

Keeps a client's summary fields (total charged, total paid, balance,
transaction count) consistent with its ledger entries.

Two strategies share one per-kind policy (kind_policy.contribution):
- incremental: add the new entry's contribution (create, import)
- full recompute: re-derive from the remaining entries with SQL sums
  (update, delete, reconciliation)

Neither strategy commits; both must run inside the caller's atomic unit
with the client row locked.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.domain.ledger.kind_policy import ZERO, contribution
from backend.app.models.client import Client
from backend.app.models.client_transaction import ClientTransaction
from backend.app.models.ledger_enums import TransactionKind


@dataclass(frozen=True)
class AggregateTotals:
    """Snapshot of a client's aggregate fields."""
    total_charged: Decimal
    total_paid: Decimal
    transaction_count: int

    @property
    def balance(self) -> Decimal:
        return self.total_charged - self.total_paid

    @classmethod
    def of(cls, client: Client) -> "AggregateTotals":
        return cls(
            total_charged=_money(client.total_charged),
            total_paid=_money(client.total_paid),
            transaction_count=client.transaction_count or 0,
        )


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


class AggregateMaintainer:

    @staticmethod
    def apply_incremental(client: Client, transaction: ClientTransaction) -> Client:
        """Add one newly inserted entry to the client's aggregate."""
        charged, paid = contribution(transaction.kind, transaction.amount, transaction.paid)
        client.total_charged = _money(client.total_charged) + charged
        client.total_paid = _money(client.total_paid) + paid
        client.balance = client.total_charged - client.total_paid
        client.transaction_count = (client.transaction_count or 0) + 1
        return client

    @staticmethod
    async def compute_totals(db: AsyncSession, client_id: int) -> AggregateTotals:
        """Derive the aggregate from the client's live entries. Read-only."""
        charged_expr = case(
            (ClientTransaction.kind == TransactionKind.CHARGE, ClientTransaction.amount),
            else_=0,
        )
        result = await db.execute(
            select(
                func.coalesce(func.sum(charged_expr), 0),
                func.coalesce(func.sum(ClientTransaction.paid), 0),
                func.count(ClientTransaction.id),
            ).where(ClientTransaction.client_id == client_id)
        )
        total_charged, total_paid, count = result.one()
        return AggregateTotals(
            total_charged=_money(total_charged).quantize(Decimal("0.01")),
            total_paid=_money(total_paid).quantize(Decimal("0.01")),
            transaction_count=count or 0,
        )

    @staticmethod
    async def recompute(db: AsyncSession, client: Client) -> AggregateTotals:
        """Overwrite the client's aggregate with values derived from its entries."""
        totals = await AggregateMaintainer.compute_totals(db, client.id)
        client.total_charged = totals.total_charged
        client.total_paid = totals.total_paid
        client.balance = totals.balance
        client.transaction_count = totals.transaction_count
        return totals

    @staticmethod
    async def find_drift(db: AsyncSession, client: Client) -> dict:
        """
        Compare the stored aggregate with the ledger.

        Returns a dict of mismatched fields ({} when consistent). Pending
        changes in the session must be flushed first.
        """
        stored = AggregateTotals.of(client)
        actual = await AggregateMaintainer.compute_totals(db, client.id)
        drift = {}

        if _money(client.balance) != stored.total_charged - stored.total_paid:
            drift["balance"] = {
                "stored": str(client.balance),
                "expected": str(stored.total_charged - stored.total_paid),
            }
        for field in ("total_charged", "total_paid", "transaction_count"):
            stored_value = getattr(stored, field)
            actual_value = getattr(actual, field)
            if stored_value != actual_value:
                drift[field] = {"stored": str(stored_value), "expected": str(actual_value)}
        return drift
