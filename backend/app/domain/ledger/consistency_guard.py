"""
Consistency Guard (Write Path).

Every ledger mutation runs as one atomic unit:

    open session -> BEGIN -> lock client row -> TransactionStore write
    -> AggregateMaintainer update -> verify -> audit -> COMMIT

Any exception inside the unit rolls the whole unit back, so the client
aggregate and its entries are never observed out of step. Units that lose
a race (stale version, serialization failure, lock contention) surface as
ConflictError and are retried from scratch by the RetryPolicy. A unit that
would commit an inconsistent aggregate is rolled back and the client is
frozen until reconcile_client runs.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    ClientFrozenError,
    ConflictError,
    ConsistencyViolationError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from backend.app.core.reliability import RetryPolicy
from backend.app.domain.ledger.aggregates import AggregateMaintainer
from backend.app.domain.ledger.client_registry import ClientRegistry
from backend.app.domain.ledger.transaction_store import TransactionStore, validate_fields
from backend.app.models.client import Client
from backend.app.models.client_transaction import ClientTransaction
from backend.app.models.ledger_enums import ClientStatus, DeleteMode
from backend.app.schemas.ledger import (
    ClientCreate,
    ReconcileResponse,
    TransactionCreate,
    TransactionImportRequest,
    TransactionUpdate,
)
from backend.app.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")
Unit = Callable[[AsyncSession], Awaitable[T]]

# PostgreSQL serialization_failure and deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_retryable_db_error(exc: DBAPIError) -> bool:
    """True when the database aborted the unit because of a concurrent writer."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


class ConsistencyGuard:
    """
    Entry point for every ledger write.

    Each public method opens its own session from `session_factory`, so a
    retried attempt starts from a clean identity map.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        retry_policy: Optional[RetryPolicy] = None,
        write_timeout: Optional[float] = None,
        verify_writes: Optional[bool] = None,
    ):
        self._session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.write_timeout = write_timeout if write_timeout is not None else settings.ledger_write_timeout_seconds
        self.verify_writes = verify_writes if verify_writes is not None else settings.ledger_verify_writes

    # Unit plumbing

    async def _execute(self, operation: str, unit: Unit) -> T:
        return await self.retry_policy.run(lambda: self._attempt(operation, unit), operation=operation)

    async def _attempt(self, operation: str, unit: Unit) -> T:
        try:
            return await asyncio.wait_for(self._run_unit(unit), timeout=self.write_timeout)
        except asyncio.TimeoutError as exc:
            logger.error("%s timed out after %ss; unit rolled back", operation, self.write_timeout)
            raise OperationTimeoutError(operation, self.write_timeout) from exc
        except ClientFrozenError:
            raise
        except ConsistencyViolationError as exc:
            logger.critical(
                "%s rolled back: %s (client %s, details=%s)",
                operation, exc.message, exc.client_id, exc.details,
            )
            await self._freeze(exc.client_id, f"{operation}: {exc.message}")
            raise

    async def _run_unit(self, unit: Unit) -> T:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    return await unit(db)
        except StaleDataError as exc:
            raise ConflictError("Client was modified by a concurrent write") from exc
        except DBAPIError as exc:
            if is_retryable_db_error(exc):
                raise ConflictError(
                    "Ledger write lost a race with a concurrent write",
                    details={"reason": str(exc.orig)},
                ) from exc
            raise

    async def _freeze(self, client_id: Any, reason: str) -> None:
        """Halt writes to a client in a unit of its own."""
        async def unit(db: AsyncSession) -> None:
            client = await ClientRegistry.lock_for_write(db, client_id, allow_inactive=True, allow_frozen=True)
            client.frozen_reason = reason[:255]
            await log_event(
                db,
                action=AuditAction.CLIENT_FROZEN,
                client_id=client_id,
                entity_type="client",
                entity_id=client_id,
                metadata={"reason": reason},
            )

        try:
            await self._run_unit(unit)
        except Exception:
            logger.exception("Failed to freeze client %s after a consistency violation", client_id)
        else:
            logger.critical("Client %s frozen; writes halted until reconciled", client_id)

    async def _verify(self, db: AsyncSession, client: Client, operation: str) -> None:
        if not self.verify_writes:
            return
        await db.flush()
        drift = await AggregateMaintainer.find_drift(db, client)
        if drift:
            raise ConsistencyViolationError(
                client.id,
                f"Aggregate diverged from ledger during {operation}",
                details={"drift": drift},
            )

    # Client lifecycle

    async def create_client(self, payload: ClientCreate, actor_id: Optional[str] = None) -> Client:
        payload = validate_fields(ClientCreate, payload, "Invalid client fields")

        async def unit(db: AsyncSession) -> Client:
            client = await ClientRegistry.create(db, payload, actor_id)
            await log_event(
                db,
                action=AuditAction.CLIENT_CREATED,
                actor_id=actor_id,
                client_id=client.id,
                entity_type="client",
                entity_id=client.id,
                metadata={"name": client.name},
            )
            return client

        client = await self._execute("create_client", unit)
        logger.info("Client %s created by %s", client.id, actor_id)
        return client

    async def delete_client(self, client_id: int, actor_id: Optional[str] = None) -> DeleteMode:
        """
        Remove a client.

        A client with transaction history is soft-deleted (INACTIVE) and its
        ledger kept; a client without history is hard-deleted. Deleting an
        already INACTIVE client is a no-op.
        """
        async def unit(db: AsyncSession) -> DeleteMode:
            client = await ClientRegistry.lock_for_write(db, client_id, allow_inactive=True, allow_frozen=True)
            if client.status == ClientStatus.INACTIVE:
                return DeleteMode.SOFT

            count = await TransactionStore.count_by_client(db, client_id)
            if count > 0:
                client.transition_to(ClientStatus.INACTIVE)
                client.updated_by = actor_id
                await log_event(
                    db,
                    action=AuditAction.CLIENT_DEACTIVATED,
                    actor_id=actor_id,
                    client_id=client_id,
                    entity_type="client",
                    entity_id=client_id,
                    metadata={"transaction_count": count},
                )
                return DeleteMode.SOFT

            await log_event(
                db,
                action=AuditAction.CLIENT_DELETED,
                actor_id=actor_id,
                client_id=client_id,
                entity_type="client",
                entity_id=client_id,
                metadata={"name": client.name},
            )
            await db.delete(client)
            await db.flush()
            return DeleteMode.HARD

        mode = await self._execute("delete_client", unit)
        logger.info("Client %s deleted (%s) by %s", client_id, mode.value, actor_id)
        return mode

    # Transactions

    async def add_transaction(
        self,
        client_id: int,
        fields: Any,
        actor_id: Optional[str] = None
    ) -> ClientTransaction:
        """Create an entry and fold it into the client aggregate incrementally."""
        payload = validate_fields(TransactionCreate, fields, "Invalid transaction fields")

        async def unit(db: AsyncSession) -> ClientTransaction:
            client = await ClientRegistry.lock_for_write(db, client_id)
            transaction = await TransactionStore.create(db, client_id, payload, actor_id)
            AggregateMaintainer.apply_incremental(client, transaction)
            client.touch(actor_id)
            await self._verify(db, client, "add_transaction")
            await log_event(
                db,
                action=AuditAction.TRANSACTION_ADDED,
                actor_id=actor_id,
                client_id=client_id,
                entity_type="transaction",
                entity_id=transaction.id,
                metadata={
                    "kind": transaction.kind.value,
                    "amount": str(transaction.amount),
                    "paid": str(transaction.paid),
                },
            )
            return transaction

        transaction = await self._execute("add_transaction", unit)
        logger.info(
            "Transaction %s added to client %s (%s %s)",
            transaction.id, client_id, transaction.kind.value, transaction.amount,
        )
        return transaction

    async def import_transactions(
        self,
        client_id: int,
        entries: List[Any],
        actor_id: Optional[str] = None
    ) -> List[ClientTransaction]:
        """Add several entries in one unit: all of them commit or none do."""
        request = validate_fields(TransactionImportRequest, {"entries": entries}, "Invalid import payload")

        async def unit(db: AsyncSession) -> List[ClientTransaction]:
            client = await ClientRegistry.lock_for_write(db, client_id)
            created = []
            for entry in request.entries:
                transaction = await TransactionStore.create(db, client_id, entry, actor_id)
                AggregateMaintainer.apply_incremental(client, transaction)
                created.append(transaction)
            client.touch(actor_id)
            await self._verify(db, client, "import_transactions")
            await log_event(
                db,
                action=AuditAction.TRANSACTIONS_IMPORTED,
                actor_id=actor_id,
                client_id=client_id,
                entity_type="client",
                entity_id=client_id,
                metadata={"count": len(created), "transaction_ids": [t.id for t in created]},
            )
            return created

        created = await self._execute("import_transactions", unit)
        logger.info("Imported %d transactions into client %s", len(created), client_id)
        return created

    async def update_transaction(
        self,
        transaction_id: int,
        fields: Any,
        actor_id: Optional[str] = None
    ) -> ClientTransaction:
        """Partially update an entry, then recompute the client aggregate."""
        if isinstance(fields, dict) and "client_id" in fields:
            raise ValidationError("client_id cannot be changed", details={"field": "client_id"})
        payload = validate_fields(TransactionUpdate, fields, "Invalid transaction fields")
        changed = sorted(payload.model_dump(exclude_unset=True))

        async def unit(db: AsyncSession) -> ClientTransaction:
            client_id = (await TransactionStore.get(db, transaction_id)).client_id
            client = await ClientRegistry.lock_for_write(db, client_id)
            # The entry may have changed while the lock was awaited
            await TransactionStore.get(db, transaction_id, reload=True)
            transaction = await TransactionStore.update(db, transaction_id, payload, actor_id)
            await AggregateMaintainer.recompute(db, client)
            client.touch(actor_id)
            await self._verify(db, client, "update_transaction")
            await log_event(
                db,
                action=AuditAction.TRANSACTION_UPDATED,
                actor_id=actor_id,
                client_id=client_id,
                entity_type="transaction",
                entity_id=transaction_id,
                metadata={"fields": changed},
            )
            return transaction

        transaction = await self._execute("update_transaction", unit)
        logger.info("Transaction %s updated (%s)", transaction_id, ", ".join(changed) or "no fields")
        return transaction

    async def delete_transaction(self, transaction_id: int, actor_id: Optional[str] = None) -> None:
        """Remove an entry, then recompute the client aggregate."""
        async def unit(db: AsyncSession) -> int:
            client_id = (await TransactionStore.get(db, transaction_id)).client_id
            client = await ClientRegistry.lock_for_write(db, client_id)
            await TransactionStore.get(db, transaction_id, reload=True)
            removed = await TransactionStore.delete(db, transaction_id)
            await AggregateMaintainer.recompute(db, client)
            client.touch(actor_id)
            await self._verify(db, client, "delete_transaction")
            await log_event(
                db,
                action=AuditAction.TRANSACTION_DELETED,
                actor_id=actor_id,
                client_id=client_id,
                entity_type="transaction",
                entity_id=transaction_id,
                metadata={
                    "kind": removed.kind.value,
                    "amount": str(removed.amount),
                    "paid": str(removed.paid),
                },
            )
            return client_id

        client_id = await self._execute("delete_transaction", unit)
        logger.info("Transaction %s deleted from client %s", transaction_id, client_id)

    # Sheets

    async def rename_sheet(
        self,
        client_id: int,
        old_sheet_name: str,
        new_sheet_name: str,
        actor_id: Optional[str] = None
    ) -> int:
        """Rename one of a client's sheets. Returns the number of entries moved."""
        async def unit(db: AsyncSession) -> int:
            await ClientRegistry.lock_for_write(db, client_id)
            updated = await TransactionStore.rename_sheet(db, client_id, old_sheet_name, new_sheet_name, actor_id)
            if updated == 0:
                raise NotFoundError("Sheet", old_sheet_name.upper())
            await log_event(
                db,
                action=AuditAction.SHEET_RENAMED,
                actor_id=actor_id,
                client_id=client_id,
                entity_type="client",
                entity_id=client_id,
                metadata={
                    "from": old_sheet_name.upper(),
                    "to": new_sheet_name.strip().upper(),
                    "updated": updated,
                },
            )
            return updated

        updated = await self._execute("rename_sheet", unit)
        logger.info("Client %s sheet %s renamed (%d entries)", client_id, old_sheet_name, updated)
        return updated

    # Reconciliation

    async def reconcile_client(self, client_id: int, actor_id: Optional[str] = None) -> ReconcileResponse:
        """
        Re-derive a client's aggregate from its ledger and lift any freeze.

        Safe to run at any time; a consistent client is left unchanged apart
        from the audit entry.
        """
        async def unit(db: AsyncSession) -> ReconcileResponse:
            client = await ClientRegistry.lock_for_write(db, client_id, allow_inactive=True, allow_frozen=True)
            was_frozen = client.is_frozen
            drift: Dict[str, Any] = await AggregateMaintainer.find_drift(db, client)
            totals = await AggregateMaintainer.recompute(db, client)
            client.frozen_reason = None
            client.updated_by = actor_id
            await log_event(
                db,
                action=AuditAction.CLIENT_RECONCILED,
                actor_id=actor_id,
                client_id=client_id,
                entity_type="client",
                entity_id=client_id,
                metadata={"drift": drift, "was_frozen": was_frozen},
            )
            return ReconcileResponse(
                client_id=client_id,
                total_charged=totals.total_charged,
                total_paid=totals.total_paid,
                balance=totals.balance,
                transaction_count=totals.transaction_count,
                drift_detected=bool(drift),
                was_frozen=was_frozen,
            )

        result = await self._execute("reconcile_client", unit)
        if result.drift_detected:
            logger.warning("Client %s reconciled; aggregate drift corrected", client_id)
        else:
            logger.info("Client %s reconciled; no drift", client_id)
        return result
