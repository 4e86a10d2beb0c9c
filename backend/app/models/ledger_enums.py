"""
Ledger enumerations.
"""

import enum


class TransactionKind(str, enum.Enum):
    """Ledger entry kind."""
    CHARGE = "CHARGE"  # Amount owed by the client
    PAYMENT = "PAYMENT"  # Money received from the client, settled in full
    TRANSFER = "TRANSFER"  # Movement between sheets; only its paid portion counts


class ClientStatus(str, enum.Enum):
    """Client lifecycle state."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"  # Soft-deleted, history retained


class DeleteMode(str, enum.Enum):
    """Outcome of deleting a client."""
    SOFT = "soft"
    HARD = "hard"


# Allowed lifecycle transitions. INACTIVE is terminal for the ledger.
CLIENT_TRANSITIONS = {
    ClientStatus.ACTIVE: {ClientStatus.INACTIVE},
    ClientStatus.INACTIVE: set(),
}
