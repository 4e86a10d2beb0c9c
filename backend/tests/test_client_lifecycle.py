"""
Client Lifecycle Tests.

ACTIVE -> INACTIVE (soft delete, history kept) or ACTIVE -> removed
(hard delete, no history).
"""

from decimal import Decimal

import pytest

from backend.app.core.exceptions import ClientInactiveError, NotFoundError
from backend.app.domain.ledger.ledger_view import LedgerView
from backend.app.domain.ledger.transaction_store import TransactionStore
from backend.app.models.client import Client
from backend.app.models.ledger_enums import ClientStatus, DeleteMode
from backend.app.services.audit import AuditAction, get_client_audit_trail


@pytest.mark.asyncio
async def test_client_without_history_is_hard_deleted(guard, ledger_client, session_factory, reload_client):
    mode = await guard.delete_client(ledger_client.id, actor_id="u")

    assert mode == DeleteMode.HARD
    assert await reload_client(ledger_client.id) is None
    async with session_factory() as db:
        with pytest.raises(NotFoundError):
            await LedgerView.get_ledger(db, ledger_client.id)
        trail = await get_client_audit_trail(db, ledger_client.id)
    assert trail[0].action == AuditAction.CLIENT_DELETED


@pytest.mark.asyncio
async def test_client_with_history_is_soft_deleted(guard, ledger_client, session_factory, reload_client, charge):
    await guard.add_transaction(ledger_client.id, charge(75), actor_id="u")

    mode = await guard.delete_client(ledger_client.id, actor_id="u")

    assert mode == DeleteMode.SOFT
    client = await reload_client(ledger_client.id)
    assert client.status == ClientStatus.INACTIVE
    assert client.balance == Decimal("75")
    async with session_factory() as db:
        assert await TransactionStore.count_by_client(db, ledger_client.id) == 1
        ledger = await LedgerView.get_ledger(db, ledger_client.id)
    assert ledger.client.status == ClientStatus.INACTIVE


@pytest.mark.asyncio
async def test_inactive_client_rejects_writes(guard, ledger_client, charge):
    transaction = await guard.add_transaction(ledger_client.id, charge(75), actor_id="u")
    await guard.delete_client(ledger_client.id, actor_id="u")

    with pytest.raises(ClientInactiveError):
        await guard.add_transaction(ledger_client.id, charge(1), actor_id="u")
    with pytest.raises(ClientInactiveError):
        await guard.update_transaction(transaction.id, {"amount": "1"}, actor_id="u")
    with pytest.raises(ClientInactiveError):
        await guard.delete_transaction(transaction.id, actor_id="u")


@pytest.mark.asyncio
async def test_deleting_inactive_client_again_is_a_no_op(guard, ledger_client, session_factory, charge):
    await guard.add_transaction(ledger_client.id, charge(75), actor_id="u")
    await guard.delete_client(ledger_client.id, actor_id="u")

    assert await guard.delete_client(ledger_client.id, actor_id="u") == DeleteMode.SOFT

    async with session_factory() as db:
        deactivations = await get_client_audit_trail(db, ledger_client.id, action=AuditAction.CLIENT_DEACTIVATED)
    assert len(deactivations) == 1


@pytest.mark.asyncio
async def test_delete_missing_client(guard):
    with pytest.raises(NotFoundError):
        await guard.delete_client(555, actor_id="u")


def test_transition_rules():
    client = Client(id=1, name="Lifecycle", status=ClientStatus.ACTIVE)

    assert client.can_transition_to(ClientStatus.INACTIVE)
    client.transition_to(ClientStatus.INACTIVE)
    assert not client.is_active
    with pytest.raises(ValueError):
        client.transition_to(ClientStatus.ACTIVE)


def test_touch_stamps_activity():
    client = Client(id=2, name="Touched", status=ClientStatus.ACTIVE, updated_by="a1")

    client.touch()
    assert client.last_active_at is not None
    assert client.updated_by == "a1"

    client.touch("a2")
    assert client.updated_by == "a2"
