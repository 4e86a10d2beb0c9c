"""
Client Registry (Domain Logic).

Explicit creation of client ledgers and write-locking of the client
aggregate row.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ClientFrozenError, ClientInactiveError, NotFoundError
from backend.app.domain.ledger.kind_policy import ZERO
from backend.app.models.client import Client
from backend.app.models.ledger_enums import ClientStatus
from backend.app.schemas.ledger import ClientCreate


class ClientRegistry:

    @staticmethod
    async def create(db: AsyncSession, payload: ClientCreate, actor_id: Optional[str] = None) -> Client:
        """Create an ACTIVE client with an empty aggregate."""
        client = Client(
            name=payload.name,
            company_name=payload.company_name,
            city=payload.city,
            phone=payload.phone,
            status=ClientStatus.ACTIVE,
            total_charged=ZERO,
            total_paid=ZERO,
            balance=ZERO,
            transaction_count=0,
            frozen_reason=None,
            last_active_at=None,
            created_by=actor_id,
            updated_by=actor_id,
        )
        db.add(client)
        await db.flush()
        return client

    @staticmethod
    async def lock_for_write(
        db: AsyncSession,
        client_id: int,
        allow_inactive: bool = False,
        allow_frozen: bool = False
    ) -> Client:
        """
        Load the client row with a row-level write lock held until the
        surrounding transaction ends.

        Raises:
            NotFoundError: client does not exist
            ClientFrozenError: writes are halted pending reconciliation
            ClientInactiveError: client was soft-deleted
        """
        result = await db.execute(
            select(Client)
            .where(Client.id == client_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        client = result.scalar_one_or_none()

        if client is None:
            raise NotFoundError("Client", client_id)
        if client.is_frozen and not allow_frozen:
            raise ClientFrozenError(client_id, client.frozen_reason)
        if not client.is_active and not allow_inactive:
            raise ClientInactiveError(client_id)

        return client
