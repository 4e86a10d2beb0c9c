"""
Transaction Store (Domain Logic).

Persists individual ledger entries for a client. Owns field validation and
the entry-level balance; client aggregates belong to AggregateMaintainer.
Every method works inside the caller's session and only flushes, so the
caller decides when the unit commits.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import NotFoundError, ValidationError, jsonable_errors
from backend.app.domain.ledger.kind_policy import settled_paid
from backend.app.models.client import Client
from backend.app.models.client_transaction import ClientTransaction
from backend.app.models.ledger_enums import TransactionKind
from backend.app.schemas.ledger import DateRange, TransactionCreate, TransactionUpdate


METADATA_FIELDS = {
    "particulars",
    "reference",
    "container_code",
    "sheet_name",
    "payment_mode",
    "payment_date",
    "notes",
}

Fields = Union[Dict[str, Any], BaseModel]


def validate_fields(schema: type, fields: Fields, message: str) -> BaseModel:
    """Parse raw fields with a schema, raising the ledger ValidationError on failure."""
    if isinstance(fields, schema):
        return fields
    if isinstance(fields, BaseModel):
        fields = fields.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(fields)
    except PydanticValidationError as exc:
        raise ValidationError(message, details={"errors": jsonable_errors(exc.errors())}) from exc


def ledger_order():
    """Newest first: transaction_date, then created_at, then id."""
    return (
        ClientTransaction.transaction_date.desc(),
        ClientTransaction.created_at.desc(),
        ClientTransaction.id.desc(),
    )


class TransactionStore:

    @staticmethod
    async def create(
        db: AsyncSession,
        client_id: int,
        fields: Fields,
        actor_id: Optional[str] = None
    ) -> ClientTransaction:
        """
        Insert a ledger entry for an existing client.

        Raises:
            ValidationError: malformed fields (negative amount, bad date, unknown kind)
            NotFoundError: client does not exist
        """
        payload = validate_fields(TransactionCreate, fields, "Invalid transaction fields")

        client = await db.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client", client_id)

        paid = settled_paid(payload.kind, payload.amount, payload.paid)
        transaction = ClientTransaction(
            client_id=client_id,
            kind=payload.kind,
            transaction_date=payload.transaction_date,
            amount=payload.amount,
            paid=paid,
            entry_balance=payload.amount - paid,
            created_by=actor_id,
            updated_by=actor_id,
            **payload.model_dump(include=METADATA_FIELDS),
        )
        db.add(transaction)
        await db.flush()
        return transaction

    @staticmethod
    async def get(db: AsyncSession, transaction_id: int, reload: bool = False) -> ClientTransaction:
        # reload bypasses the identity map, e.g. after taking the client lock
        transaction = await db.get(ClientTransaction, transaction_id, populate_existing=reload)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    @staticmethod
    async def update(
        db: AsyncSession,
        transaction_id: int,
        fields: Fields,
        actor_id: Optional[str] = None
    ) -> ClientTransaction:
        """
        Partially update a ledger entry.

        Fields present in the payload overwrite stored values. entry_balance
        is recomputed only when amount or paid actually changed. A payment
        without an explicit paid stays settled in full against its amount.

        Raises:
            ValidationError: malformed fields, a client_id change, or a payment
                whose paid differs from its amount
            NotFoundError: unknown transaction
        """
        if isinstance(fields, dict) and "client_id" in fields:
            raise ValidationError(
                "client_id cannot be changed",
                details={"field": "client_id"}
            )
        payload = validate_fields(TransactionUpdate, fields, "Invalid transaction fields")

        transaction = await TransactionStore.get(db, transaction_id)

        previous = (transaction.amount, transaction.paid)
        changes = payload.model_dump(exclude_unset=True)

        kind = changes.get("kind", transaction.kind)
        if kind == TransactionKind.PAYMENT:
            # An unsupplied paid follows the (possibly new) amount
            changes["paid"] = settled_paid(kind, changes.get("amount", transaction.amount), changes.get("paid"))

        for field, value in changes.items():
            setattr(transaction, field, value)

        if (transaction.amount, transaction.paid) != previous:
            transaction.entry_balance = transaction.amount - transaction.paid

        transaction.updated_by = actor_id
        await db.flush()
        return transaction

    @staticmethod
    async def delete(db: AsyncSession, transaction_id: int) -> ClientTransaction:
        """Remove a ledger entry. Returns the removed row."""
        transaction = await TransactionStore.get(db, transaction_id)
        await db.delete(transaction)
        await db.flush()
        return transaction

    @staticmethod
    async def list_by_client(
        db: AsyncSession,
        client_id: int,
        date_range: Optional[DateRange] = None,
        page: int = 1,
        page_size: Optional[int] = 50,
        sheet_name: Optional[str] = None,
        container_code: Optional[str] = None
    ) -> Tuple[List[ClientTransaction], int]:
        """
        List a client's entries newest first.

        Returns (page_items, total_matching). page_size=None returns the
        whole matching history in one page.
        """
        if page < 1:
            raise ValidationError("page must be at least 1", details={"page": page})
        if page_size is not None and page_size < 1:
            raise ValidationError("page_size must be at least 1", details={"page_size": page_size})

        query = select(ClientTransaction).where(ClientTransaction.client_id == client_id)

        if date_range is not None:
            if date_range.start_date:
                query = query.where(ClientTransaction.transaction_date >= date_range.start_date)
            if date_range.end_date:
                query = query.where(ClientTransaction.transaction_date <= date_range.end_date)
        if sheet_name:
            query = query.where(ClientTransaction.sheet_name == sheet_name.upper())
        if container_code:
            query = query.where(ClientTransaction.container_code == container_code)

        total_result = await db.execute(select(func.count()).select_from(query.subquery()))
        total = total_result.scalar() or 0

        query = query.order_by(*ledger_order())
        if page_size is not None:
            query = query.offset((page - 1) * page_size).limit(page_size)

        result = await db.execute(query)
        return list(result.scalars().all()), total

    @staticmethod
    async def count_by_client(db: AsyncSession, client_id: int) -> int:
        result = await db.execute(
            select(func.count(ClientTransaction.id)).where(ClientTransaction.client_id == client_id)
        )
        return result.scalar() or 0

    @staticmethod
    async def available_sheets(db: AsyncSession, client_id: int) -> List[str]:
        """Distinct sheet names and container codes used in a client's ledger."""
        result = await db.execute(
            select(ClientTransaction.sheet_name, ClientTransaction.container_code)
            .where(ClientTransaction.client_id == client_id)
            .distinct()
        )
        sheets = set()
        for sheet_name, container_code in result.all():
            if sheet_name:
                sheets.add(sheet_name)
            if container_code:
                sheets.add(container_code)
        return sorted(sheets)

    @staticmethod
    async def rename_sheet(
        db: AsyncSession,
        client_id: int,
        old_sheet_name: str,
        new_sheet_name: str,
        actor_id: Optional[str] = None
    ) -> int:
        """Move every entry of one sheet to another name. Returns rows updated."""
        if not new_sheet_name or not new_sheet_name.strip():
            raise ValidationError("New sheet name is required", details={"field": "new_sheet_name"})

        result = await db.execute(
            update(ClientTransaction)
            .where(
                ClientTransaction.client_id == client_id,
                ClientTransaction.sheet_name == old_sheet_name.upper()
            )
            .values(sheet_name=new_sheet_name.strip().upper(), updated_by=actor_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
