"""
Client Accounts Ledger API Endpoints.

Writes go through the ConsistencyGuard; reads go straight to the
LedgerView and never touch the write path.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.dependencies import get_current_actor, get_ledger_guard
from backend.app.db.session import get_db
from backend.app.domain.ledger.consistency_guard import ConsistencyGuard
from backend.app.domain.ledger.ledger_view import LedgerView
from backend.app.domain.ledger.transaction_store import validate_fields
from backend.app.schemas.ledger import (
    AuditLogResponse,
    ClientCreate,
    ClientDeleteResponse,
    ClientResponse,
    DateRange,
    LedgerResponse,
    LedgerStatsResponse,
    ReconcileResponse,
    SheetRenameRequest,
    SheetRenameResponse,
    TransactionCreate,
    TransactionImportRequest,
    TransactionImportResponse,
    TransactionResponse,
    TransactionUpdate,
)
from backend.app.services.audit import get_client_audit_trail
from backend.app.services.ledger_export import XLSX_CONTENT_TYPE, export_filename, export_ledger_to_excel

router = APIRouter(prefix="/accounts", tags=["Client Accounts Ledger"])


@router.post("/clients", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    payload: ClientCreate,
    actor_id: str = Depends(get_current_actor),
    guard: ConsistencyGuard = Depends(get_ledger_guard)
):
    """Create a client with an empty ledger."""
    client = await guard.create_client(payload, actor_id=actor_id)
    return ClientResponse.model_validate(client)


@router.get("/clients/{client_id}/ledger", response_model=LedgerResponse)
async def get_client_ledger(
    client_id: int,
    start_date: Optional[date] = Query(None, description="Inclusive lower bound on transaction_date"),
    end_date: Optional[date] = Query(None, description="Inclusive upper bound on transaction_date"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.ledger_default_page_size, ge=1, le=settings.ledger_max_page_size),
    full_history: bool = Query(False, description="Return every matching entry in one page"),
    sheet_name: Optional[str] = Query(None),
    container_code: Optional[str] = Query(None),
    actor_id: str = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Running balance statement for a client, newest first.

    Running balances are computed within the returned page; use
    full_history for a balance carried across the whole ledger.
    """
    date_range = validate_fields(
        DateRange,
        {"start_date": start_date, "end_date": end_date},
        "Invalid date range",
    )
    return await LedgerView.get_ledger(
        db,
        client_id,
        date_range=date_range,
        page=1 if full_history else page,
        page_size=None if full_history else page_size,
        sheet_name=sheet_name,
        container_code=container_code,
    )


@router.get("/clients/{client_id}/ledger/export")
async def export_client_ledger(
    client_id: int,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    sheet_name: Optional[str] = Query(None),
    container_code: Optional[str] = Query(None),
    actor_id: str = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Download the full filtered ledger as an .xlsx workbook."""
    date_range = validate_fields(
        DateRange,
        {"start_date": start_date, "end_date": end_date},
        "Invalid date range",
    )
    ledger = await LedgerView.get_ledger(
        db,
        client_id,
        date_range=date_range,
        page_size=None,
        sheet_name=sheet_name,
        container_code=container_code,
    )
    return Response(
        content=export_ledger_to_excel(ledger, date_range),
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f"attachment; filename={export_filename(ledger.client.name)}"},
    )


@router.get("/clients/{client_id}/audit", response_model=List[AuditLogResponse])
async def get_client_audit(
    client_id: int,
    action: Optional[str] = Query(None, description="Only events of this action, e.g. TRANSACTION_ADDED"),
    limit: int = Query(100, ge=1, le=500),
    actor_id: str = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Audit trail for a client, most recent first.

    Hard-deleted clients keep their trail, so an unknown client id yields
    an empty list rather than 404.
    """
    logs = await get_client_audit_trail(db, client_id, action=action, limit=limit)
    return [AuditLogResponse.model_validate(log) for log in logs]


@router.get("/clients/{client_id}/ledger/stats", response_model=LedgerStatsResponse)
async def get_client_ledger_stats(
    client_id: int,
    actor_id: str = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db)
):
    """Monthly breakdown and per-kind totals."""
    return await LedgerView.get_stats(db, client_id)


@router.post(
    "/clients/{client_id}/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_transaction(
    client_id: int,
    payload: TransactionCreate,
    actor_id: str = Depends(get_current_actor),
    guard: ConsistencyGuard = Depends(get_ledger_guard)
):
    """Add a ledger entry and update the client aggregate atomically."""
    transaction = await guard.add_transaction(client_id, payload, actor_id=actor_id)
    return TransactionResponse.model_validate(transaction)


@router.post(
    "/clients/{client_id}/transactions/import",
    response_model=TransactionImportResponse,
    status_code=status.HTTP_201_CREATED
)
async def import_transactions(
    client_id: int,
    payload: TransactionImportRequest,
    actor_id: str = Depends(get_current_actor),
    guard: ConsistencyGuard = Depends(get_ledger_guard)
):
    """Import several entries; either all are recorded or none are."""
    created = await guard.import_transactions(client_id, payload.entries, actor_id=actor_id)
    return TransactionImportResponse(
        imported=len(created),
        transactions=[TransactionResponse.model_validate(t) for t in created],
    )


@router.patch("/transactions/{transaction_id}", response_model=TransactionResponse)
async def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    actor_id: str = Depends(get_current_actor),
    guard: ConsistencyGuard = Depends(get_ledger_guard)
):
    """Partially update a ledger entry; the aggregate is recomputed."""
    transaction = await guard.update_transaction(transaction_id, payload, actor_id=actor_id)
    return TransactionResponse.model_validate(transaction)


@router.delete("/transactions/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transaction(
    transaction_id: int,
    actor_id: str = Depends(get_current_actor),
    guard: ConsistencyGuard = Depends(get_ledger_guard)
):
    """Remove a ledger entry; the aggregate is recomputed."""
    await guard.delete_transaction(transaction_id, actor_id=actor_id)


@router.delete("/clients/{client_id}", response_model=ClientDeleteResponse)
async def delete_client(
    client_id: int,
    actor_id: str = Depends(get_current_actor),
    guard: ConsistencyGuard = Depends(get_ledger_guard)
):
    """Soft-delete a client with history, hard-delete one without."""
    mode = await guard.delete_client(client_id, actor_id=actor_id)
    return ClientDeleteResponse(client_id=client_id, mode=mode)


@router.post("/clients/{client_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_client(
    client_id: int,
    actor_id: str = Depends(get_current_actor),
    guard: ConsistencyGuard = Depends(get_ledger_guard)
):
    """Recompute the aggregate from the ledger and lift a write freeze."""
    return await guard.reconcile_client(client_id, actor_id=actor_id)


@router.patch("/clients/{client_id}/sheets/{sheet_name}", response_model=SheetRenameResponse)
async def rename_sheet(
    client_id: int,
    sheet_name: str,
    payload: SheetRenameRequest,
    actor_id: str = Depends(get_current_actor),
    guard: ConsistencyGuard = Depends(get_ledger_guard)
):
    """Rename a sheet across all of a client's entries."""
    updated = await guard.rename_sheet(client_id, sheet_name, payload.new_sheet_name, actor_id=actor_id)
    return SheetRenameResponse(client_id=client_id, sheet_name=payload.new_sheet_name, updated=updated)
