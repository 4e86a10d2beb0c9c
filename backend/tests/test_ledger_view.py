"""
Ledger View Tests.

Running balance is a pure prefix sum over the page, oldest to newest.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from backend.app.core.exceptions import NotFoundError
from backend.app.domain.ledger.ledger_view import LedgerView, annotate_page, build_pagination, running_balances
from backend.app.models.ledger_enums import TransactionKind


def entry(amount, paid):
    return SimpleNamespace(amount=Decimal(str(amount)), paid=Decimal(str(paid)))


def test_running_balances_are_prefix_sums():
    entries = [entry(100, 0), entry(50, 20), entry(0, 30), entry(10, 10)]

    balances = [running for _, running in running_balances(entries)]

    assert balances == [Decimal("100"), Decimal("130"), Decimal("100"), Decimal("100")]


def test_annotate_page_keeps_newest_first_order():
    newest_first = [entry(0, 100), entry(50, 50), entry(100, 0)]

    annotated = annotate_page(newest_first)

    assert [e for e, _ in annotated] == newest_first
    assert [running for _, running in annotated] == [Decimal("0"), Decimal("100"), Decimal("100")]


def test_pagination_metadata():
    meta = build_pagination(page=2, page_size=10, total=25)
    assert (meta.total_pages, meta.has_next_page, meta.has_prev_page) == (3, True, True)

    meta = build_pagination(page=1, page_size=None, total=7)
    assert (meta.page_size, meta.total_pages, meta.has_next_page) == (7, 1, False)

    meta = build_pagination(page=1, page_size=10, total=0)
    assert (meta.total_pages, meta.has_next_page, meta.has_prev_page) == (0, False, False)


@pytest.mark.asyncio
async def test_three_day_statement(guard, ledger_client, session_factory, charge):
    await guard.add_transaction(ledger_client.id, charge(100, day=date(2024, 1, 1)), actor_id="u")
    await guard.add_transaction(ledger_client.id, charge(50, paid=50, day=date(2024, 1, 2)), actor_id="u")
    await guard.add_transaction(ledger_client.id, charge(0, paid=100, day=date(2024, 1, 3)), actor_id="u")

    async with session_factory() as db:
        ledger = await LedgerView.get_ledger(db, ledger_client.id)

    assert [t.transaction_date.day for t in ledger.transactions] == [3, 2, 1]
    assert [t.running_balance for t in ledger.transactions] == [Decimal("0"), Decimal("100"), Decimal("100")]
    assert ledger.summary.total_transactions == 3
    assert ledger.summary.total_charged == Decimal("150")
    assert ledger.summary.total_paid == Decimal("150")
    assert ledger.summary.balance == Decimal("0")


@pytest.mark.asyncio
async def test_running_balance_is_page_local(guard, ledger_client, session_factory, charge):
    for day in range(1, 5):
        await guard.add_transaction(ledger_client.id, charge(10, day=date(2024, 2, day)), actor_id="u")

    async with session_factory() as db:
        first_page = await LedgerView.get_ledger(db, ledger_client.id, page=1, page_size=2)
        second_page = await LedgerView.get_ledger(db, ledger_client.id, page=2, page_size=2)
        full = await LedgerView.get_ledger(db, ledger_client.id, page_size=None)

    assert [t.running_balance for t in first_page.transactions] == [Decimal("20"), Decimal("10")]
    assert [t.running_balance for t in second_page.transactions] == [Decimal("20"), Decimal("10")]
    assert [t.running_balance for t in full.transactions] == [
        Decimal("40"), Decimal("30"), Decimal("20"), Decimal("10"),
    ]
    # Summary always reflects the whole ledger
    assert first_page.summary.balance == Decimal("40")
    assert first_page.pagination.has_next_page is True
    assert second_page.pagination.has_prev_page is True


@pytest.mark.asyncio
async def test_ledger_for_missing_client(session_factory):
    async with session_factory() as db:
        with pytest.raises(NotFoundError):
            await LedgerView.get_ledger(db, 4242)


@pytest.mark.asyncio
async def test_stats(guard, ledger_client, session_factory, charge, payment):
    await guard.add_transaction(ledger_client.id, charge(100, day=date(2024, 1, 15)), actor_id="u")
    await guard.add_transaction(ledger_client.id, payment(40, day=date(2024, 1, 20)), actor_id="u")
    await guard.add_transaction(ledger_client.id, charge(60, paid=10, day=date(2024, 2, 1)), actor_id="u")

    async with session_factory() as db:
        stats = await LedgerView.get_stats(db, ledger_client.id)

    assert [m.month for m in stats.months] == ["2024-01", "2024-02"]
    january = stats.months[0]
    assert (january.charged, january.paid, january.net, january.count) == (
        Decimal("100"), Decimal("40"), Decimal("60"), 2,
    )
    assert [k.kind for k in stats.kinds] == [TransactionKind.CHARGE, TransactionKind.PAYMENT]
    assert stats.kinds[0].amount == Decimal("160")
    assert stats.kinds[0].count == 2
