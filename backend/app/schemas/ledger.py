"""
Client ledger Pydantic schemas.

Defines request and response models for ledger writes and the running
balance read model.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from backend.app.models.ledger_enums import ClientStatus, DeleteMode, TransactionKind


Money = Decimal

_OPTIONAL_TEXT_FIELDS = ("particulars", "reference", "container_code", "sheet_name", "payment_mode", "notes")


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        if value == "":
            return None
    return value


class TransactionCreate(BaseModel):
    """Schema for adding a ledger entry."""
    kind: TransactionKind
    amount: Money = Field(..., ge=0, max_digits=14, decimal_places=2, description="Face value")
    paid: Money = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=2, description="Amount settled against this entry")
    transaction_date: date
    particulars: Optional[str] = Field(None, max_length=255)
    reference: Optional[str] = Field(None, max_length=100, description="Counterparty reference")
    container_code: Optional[str] = Field(None, max_length=50)
    sheet_name: Optional[str] = Field(None, max_length=100)
    payment_mode: Optional[str] = Field(None, max_length=30)
    payment_date: Optional[date] = None
    notes: Optional[str] = None

    @field_validator(*_OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def blank_strings_are_null(cls, value):
        return _blank_to_none(value)

    @field_validator("sheet_name")
    @classmethod
    def sheet_names_are_upper_case(cls, value):
        return value.upper() if value else value


class TransactionUpdate(BaseModel):
    """
    Schema for a partial update of a ledger entry.

    Only fields present in the payload are written. The owning client
    cannot be changed.
    """
    kind: Optional[TransactionKind] = None
    amount: Optional[Money] = Field(None, ge=0, max_digits=14, decimal_places=2)
    paid: Optional[Money] = Field(None, ge=0, max_digits=14, decimal_places=2)
    transaction_date: Optional[date] = None
    particulars: Optional[str] = Field(None, max_length=255)
    reference: Optional[str] = Field(None, max_length=100)
    container_code: Optional[str] = Field(None, max_length=50)
    sheet_name: Optional[str] = Field(None, max_length=100)
    payment_mode: Optional[str] = Field(None, max_length=30)
    payment_date: Optional[date] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"

    @field_validator(*_OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def blank_strings_are_null(cls, value):
        return _blank_to_none(value)

    @field_validator("sheet_name")
    @classmethod
    def sheet_names_are_upper_case(cls, value):
        return value.upper() if value else value

    @model_validator(mode="after")
    def required_fields_not_null(self):
        for name in ("kind", "amount", "paid", "transaction_date"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class TransactionResponse(BaseModel):
    """Schema for displaying a ledger entry."""
    id: int
    client_id: int
    kind: TransactionKind
    transaction_date: date
    amount: Money
    paid: Money
    entry_balance: Money
    particulars: Optional[str]
    reference: Optional[str]
    container_code: Optional[str]
    sheet_name: Optional[str]
    payment_mode: Optional[str]
    payment_date: Optional[date]
    notes: Optional[str]
    created_by: Optional[str]
    updated_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LedgerEntryResponse(TransactionResponse):
    """Ledger entry annotated with its page-local running balance."""
    running_balance: Money


class TransactionImportRequest(BaseModel):
    """Schema for importing several entries in one atomic write."""
    entries: List[TransactionCreate] = Field(..., min_length=1, max_length=1000)


class TransactionImportResponse(BaseModel):
    """Result of a bulk import."""
    imported: int
    transactions: List[TransactionResponse]


class DateRange(BaseModel):
    """Inclusive transaction_date window."""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def start_before_end(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class ClientCreate(BaseModel):
    """Schema for creating a client ledger."""
    name: str = Field(..., min_length=1, max_length=200)
    company_name: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)


class ClientResponse(BaseModel):
    """Schema for displaying a client and its aggregate."""
    id: int
    name: str
    company_name: Optional[str]
    city: Optional[str]
    phone: Optional[str]
    status: ClientStatus
    total_charged: Money
    total_paid: Money
    balance: Money
    transaction_count: int
    frozen_reason: Optional[str]
    last_active_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class ClientDeleteResponse(BaseModel):
    """Outcome of deleting a client."""
    client_id: int
    mode: DeleteMode


class LedgerSummary(BaseModel):
    """Summary block drawn from the client aggregate."""
    total_transactions: int
    total_charged: Money
    total_paid: Money
    balance: Money


class LedgerPagination(BaseModel):
    """Offset pagination metadata."""
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class LedgerResponse(BaseModel):
    """Running balance read model for statements and printing."""
    client: ClientResponse
    summary: LedgerSummary
    transactions: List[LedgerEntryResponse]
    pagination: LedgerPagination
    available_sheets: List[str]


class SheetRenameRequest(BaseModel):
    """Schema for renaming a client's sheet."""
    new_sheet_name: str = Field(..., min_length=1, max_length=100)

    @field_validator("new_sheet_name")
    @classmethod
    def upper_case(cls, value):
        value = value.strip()
        if not value:
            raise ValueError("New sheet name is required")
        return value.upper()


class SheetRenameResponse(BaseModel):
    """Result of a sheet rename."""
    client_id: int
    sheet_name: str
    updated: int


class ReconcileResponse(BaseModel):
    """Result of reconciling a client's aggregate with its ledger."""
    client_id: int
    total_charged: Money
    total_paid: Money
    balance: Money
    transaction_count: int
    drift_detected: bool
    was_frozen: bool


class MonthlyBreakdown(BaseModel):
    """Ledger activity for one calendar month."""
    month: str
    charged: Money
    paid: Money
    net: Money
    count: int


class KindTotals(BaseModel):
    """Ledger activity for one transaction kind."""
    kind: TransactionKind
    amount: Money
    paid: Money
    count: int


class LedgerStatsResponse(BaseModel):
    """Ledger statistics for a client."""
    client_id: int
    months: List[MonthlyBreakdown]
    kinds: List[KindTotals]


class AuditLogResponse(BaseModel):
    """One recorded ledger mutation."""
    id: int
    actor_id: Optional[str]
    action: str
    client_id: Optional[int]
    entity_type: Optional[str]
    entity_id: Optional[int]
    meta_data: Optional[Dict[str, Any]]
    timestamp: datetime

    class Config:
        from_attributes = True
