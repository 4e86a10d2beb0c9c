"""
Ledger View (Read Model).

Builds the running balance statement for a client. Read-only: never
touches the write path, safe to retry.

Running balance is page-local. The page is fetched newest first, walked
oldest to newest accumulating (amount - paid), then presented newest
first again. A previous page's total is not carried forward; callers
that need a lifetime running balance request the full history.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import NotFoundError
from backend.app.domain.ledger.kind_policy import ZERO
from backend.app.domain.ledger.transaction_store import TransactionStore
from backend.app.models.client import Client
from backend.app.models.client_transaction import ClientTransaction
from backend.app.models.ledger_enums import TransactionKind
from backend.app.schemas.ledger import (
    ClientResponse,
    DateRange,
    KindTotals,
    LedgerEntryResponse,
    LedgerPagination,
    LedgerResponse,
    LedgerStatsResponse,
    LedgerSummary,
    MonthlyBreakdown,
    TransactionResponse,
)


def running_balances(entries_oldest_first: Iterable) -> Iterator[Tuple[object, Decimal]]:
    """Yield (entry, running_balance) with running += amount - paid."""
    running = ZERO
    for entry in entries_oldest_first:
        running += entry.amount - entry.paid
        yield entry, running


def annotate_page(entries_newest_first: Iterable) -> List[Tuple[object, Decimal]]:
    """Attach page-local running balances to a newest-first page, keeping its order."""
    oldest_first = list(entries_newest_first)
    oldest_first.reverse()
    annotated = list(running_balances(oldest_first))
    annotated.reverse()
    return annotated


def build_pagination(page: int, page_size: Optional[int], total: int) -> LedgerPagination:
    if page_size is None:
        return LedgerPagination(
            page=1,
            page_size=total,
            total=total,
            total_pages=1,
            has_next_page=False,
            has_prev_page=False,
        )
    total_pages = (total + page_size - 1) // page_size
    return LedgerPagination(
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


class LedgerView:

    @staticmethod
    async def get_client(db: AsyncSession, client_id: int) -> Client:
        client = await db.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client", client_id)
        return client

    @staticmethod
    async def get_ledger(
        db: AsyncSession,
        client_id: int,
        date_range: Optional[DateRange] = None,
        page: int = 1,
        page_size: Optional[int] = 50,
        sheet_name: Optional[str] = None,
        container_code: Optional[str] = None
    ) -> LedgerResponse:
        """
        Ledger page with per-entry running balance.

        The summary block comes straight from the client aggregate, not
        from the page. page_size=None returns the full history.
        """
        client = await LedgerView.get_client(db, client_id)

        entries, total = await TransactionStore.list_by_client(
            db,
            client_id,
            date_range=date_range,
            page=page,
            page_size=page_size,
            sheet_name=sheet_name,
            container_code=container_code,
        )

        transactions = [
            LedgerEntryResponse(
                **TransactionResponse.model_validate(entry).model_dump(),
                running_balance=running,
            )
            for entry, running in annotate_page(entries)
        ]

        return LedgerResponse(
            client=ClientResponse.model_validate(client),
            summary=LedgerSummary(
                total_transactions=client.transaction_count,
                total_charged=client.total_charged,
                total_paid=client.total_paid,
                balance=client.balance,
            ),
            transactions=transactions,
            pagination=build_pagination(page, page_size, total),
            available_sheets=await TransactionStore.available_sheets(db, client_id),
        )

    @staticmethod
    async def get_stats(db: AsyncSession, client_id: int) -> LedgerStatsResponse:
        """Monthly breakdown and per-kind totals for a client's ledger."""
        await LedgerView.get_client(db, client_id)

        result = await db.execute(
            select(
                ClientTransaction.transaction_date,
                ClientTransaction.kind,
                ClientTransaction.amount,
                ClientTransaction.paid,
            )
            .where(ClientTransaction.client_id == client_id)
            .order_by(ClientTransaction.transaction_date.asc())
        )

        months: "OrderedDict[str, dict]" = OrderedDict()
        for transaction_date, kind, amount, paid in result.all():
            key = f"{transaction_date.year}-{transaction_date.month:02d}"
            bucket = months.setdefault(key, {"charged": ZERO, "paid": ZERO, "count": 0})
            if kind == TransactionKind.CHARGE:
                bucket["charged"] += amount
            bucket["paid"] += paid
            bucket["count"] += 1

        kind_result = await db.execute(
            select(
                ClientTransaction.kind,
                func.coalesce(func.sum(ClientTransaction.amount), 0),
                func.coalesce(func.sum(ClientTransaction.paid), 0),
                func.count(ClientTransaction.id),
            )
            .where(ClientTransaction.client_id == client_id)
            .group_by(ClientTransaction.kind)
            .order_by(
                case(
                    (ClientTransaction.kind == TransactionKind.CHARGE, 0),
                    (ClientTransaction.kind == TransactionKind.PAYMENT, 1),
                    else_=2,
                )
            )
        )

        return LedgerStatsResponse(
            client_id=client_id,
            months=[
                MonthlyBreakdown(
                    month=month,
                    charged=data["charged"],
                    paid=data["paid"],
                    net=data["charged"] - data["paid"],
                    count=data["count"],
                )
                for month, data in months.items()
            ],
            kinds=[
                KindTotals(kind=kind, amount=amount, paid=paid, count=count)
                for kind, amount, paid, count in kind_result.all()
            ],
        )
