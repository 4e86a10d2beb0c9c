"""
Transaction Store Tests.

Field validation, entry balance and newest-first listing.
"""

from datetime import date
from decimal import Decimal

import pytest

from backend.app.core.exceptions import NotFoundError, ValidationError
from backend.app.domain.ledger.client_registry import ClientRegistry
from backend.app.domain.ledger.transaction_store import TransactionStore
from backend.app.models.ledger_enums import TransactionKind
from backend.app.schemas.ledger import ClientCreate, DateRange


@pytest.fixture
async def stored_client(db_session):
    return await ClientRegistry.create(db_session, ClientCreate(name="Store Client"))


@pytest.mark.asyncio
async def test_create_computes_entry_balance(db_session, stored_client, charge):
    transaction = await TransactionStore.create(db_session, stored_client.id, charge(1000, paid=200), actor_id="u1")

    assert transaction.id is not None
    assert transaction.entry_balance == Decimal("800")
    assert transaction.created_by == "u1"


@pytest.mark.asyncio
async def test_payment_is_settled_in_full(db_session, stored_client, payment):
    transaction = await TransactionStore.create(db_session, stored_client.id, payment(500))

    assert transaction.paid == Decimal("500")
    assert transaction.entry_balance == Decimal("0")


@pytest.mark.asyncio
async def test_create_rejects_negative_amount(db_session, stored_client, charge):
    with pytest.raises(ValidationError):
        await TransactionStore.create(db_session, stored_client.id, charge(-1))


@pytest.mark.asyncio
async def test_create_rejects_unknown_kind_and_bad_date(db_session, stored_client):
    with pytest.raises(ValidationError):
        await TransactionStore.create(
            db_session, stored_client.id,
            {"kind": "REFUND", "amount": "10", "transaction_date": "2024-01-01"},
        )
    with pytest.raises(ValidationError):
        await TransactionStore.create(
            db_session, stored_client.id,
            {"kind": "CHARGE", "amount": "10", "transaction_date": "not-a-date"},
        )


@pytest.mark.asyncio
async def test_create_for_missing_client(db_session, charge):
    with pytest.raises(NotFoundError):
        await TransactionStore.create(db_session, 9999, charge(10))


@pytest.mark.asyncio
async def test_metadata_is_normalized(db_session, stored_client, charge):
    transaction = await TransactionStore.create(
        db_session, stored_client.id,
        charge(10, sheet_name="  march  ", notes="   ", container_code="MSKU1234567"),
    )

    assert transaction.sheet_name == "MARCH"
    assert transaction.notes is None
    assert transaction.container_code == "MSKU1234567"


@pytest.mark.asyncio
async def test_update_recomputes_entry_balance_only_when_money_changes(db_session, stored_client, charge):
    transaction = await TransactionStore.create(db_session, stored_client.id, charge(1000, paid=200))

    # Overwrite entry_balance to observe whether update touches it
    transaction.entry_balance = Decimal("123")
    await db_session.flush()

    updated = await TransactionStore.update(db_session, transaction.id, {"notes": "called"})
    assert updated.entry_balance == Decimal("123")

    updated = await TransactionStore.update(db_session, transaction.id, {"amount": "1200"})
    assert updated.entry_balance == Decimal("1000")


@pytest.mark.asyncio
async def test_update_rejects_client_change_and_unknown_id(db_session, stored_client, charge):
    transaction = await TransactionStore.create(db_session, stored_client.id, charge(10))

    with pytest.raises(ValidationError):
        await TransactionStore.update(db_session, transaction.id, {"client_id": 2})
    with pytest.raises(ValidationError):
        await TransactionStore.update(db_session, transaction.id, {"amount": None})
    with pytest.raises(NotFoundError):
        await TransactionStore.update(db_session, 9999, {"notes": "x"})


@pytest.mark.asyncio
async def test_delete(db_session, stored_client, charge):
    transaction = await TransactionStore.create(db_session, stored_client.id, charge(10))

    await TransactionStore.delete(db_session, transaction.id)

    assert await TransactionStore.count_by_client(db_session, stored_client.id) == 0
    with pytest.raises(NotFoundError):
        await TransactionStore.delete(db_session, transaction.id)


@pytest.mark.asyncio
async def test_list_orders_newest_first_with_created_at_tiebreak(db_session, stored_client, charge):
    first = await TransactionStore.create(db_session, stored_client.id, charge(1, day=date(2024, 1, 2)))
    second = await TransactionStore.create(db_session, stored_client.id, charge(2, day=date(2024, 1, 2)))
    older = await TransactionStore.create(db_session, stored_client.id, charge(3, day=date(2024, 1, 1)))

    items, total = await TransactionStore.list_by_client(db_session, stored_client.id)

    assert total == 3
    assert [t.id for t in items] == [second.id, first.id, older.id]


@pytest.mark.asyncio
async def test_list_pages_and_filters(db_session, stored_client, charge):
    for day in range(1, 6):
        await TransactionStore.create(
            db_session, stored_client.id,
            charge(day, day=date(2024, 1, day), sheet_name="a" if day % 2 else "b"),
        )

    page, total = await TransactionStore.list_by_client(db_session, stored_client.id, page=2, page_size=2)
    assert total == 5
    assert [t.transaction_date.day for t in page] == [3, 2]

    window = DateRange(start_date=date(2024, 1, 2), end_date=date(2024, 1, 4))
    items, total = await TransactionStore.list_by_client(db_session, stored_client.id, date_range=window, page_size=None)
    assert total == 3
    assert [t.transaction_date.day for t in items] == [4, 3, 2]

    items, total = await TransactionStore.list_by_client(db_session, stored_client.id, sheet_name="b")
    assert total == 2

    with pytest.raises(ValidationError):
        await TransactionStore.list_by_client(db_session, stored_client.id, page=0)


@pytest.mark.asyncio
async def test_available_sheets_and_rename(db_session, stored_client, charge):
    client_id = stored_client.id
    await TransactionStore.create(db_session, client_id, charge(1, sheet_name="jan"))
    await TransactionStore.create(db_session, client_id, charge(2, sheet_name="jan"))
    await TransactionStore.create(db_session, client_id, charge(3, container_code="TGHU0001"))

    assert await TransactionStore.available_sheets(db_session, client_id) == ["JAN", "TGHU0001"]

    updated = await TransactionStore.rename_sheet(db_session, client_id, "jan", "January")
    assert updated == 2

    db_session.expire_all()
    assert await TransactionStore.available_sheets(db_session, client_id) == ["JANUARY", "TGHU0001"]
    assert await TransactionStore.rename_sheet(db_session, client_id, "missing", "x") == 0


@pytest.mark.asyncio
async def test_payment_rejects_partial_paid(db_session, stored_client, payment):
    with pytest.raises(ValidationError):
        await TransactionStore.create(db_session, stored_client.id, payment(500, paid="100"))

    # Zero and an exact match both mean settled in full
    zero = await TransactionStore.create(db_session, stored_client.id, payment(500, paid="0"))
    exact = await TransactionStore.create(db_session, stored_client.id, payment(300, paid="300"))
    assert zero.paid == Decimal("500")
    assert exact.paid == Decimal("300")


@pytest.mark.asyncio
async def test_payment_update_keeps_paid_in_step_with_amount(db_session, stored_client, payment):
    transaction = await TransactionStore.create(db_session, stored_client.id, payment(500))

    with pytest.raises(ValidationError):
        await TransactionStore.update(db_session, transaction.id, {"paid": "100"})
    assert transaction.paid == Decimal("500")

    updated = await TransactionStore.update(db_session, transaction.id, {"amount": "650"})
    assert updated.paid == Decimal("650")
    assert updated.entry_balance == Decimal("0")

    updated = await TransactionStore.update(db_session, transaction.id, {"paid": "650", "notes": "cheque"})
    assert updated.paid == Decimal("650")
