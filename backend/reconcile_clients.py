"""
Ledger reconciliation script.

Checks every client's aggregate (total charged, total paid, balance,
transaction count) against its ledger entries and reports drift. With
--fix, re-derives the aggregate of each drifted or frozen client and lifts
any write freeze.

Usage:
    python backend/reconcile_clients.py [--client-id ID] [--fix]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from backend.app.db.session import AsyncSessionLocal, engine
from backend.app.domain.ledger.aggregates import AggregateMaintainer
from backend.app.domain.ledger.consistency_guard import ConsistencyGuard
from backend.app.models.client import Client


async def find_drifted_clients(client_id: int = None) -> list:
    """Return (client_id, name, drift, frozen_reason) for every client needing attention."""
    findings = []
    async with AsyncSessionLocal() as db:
        query = select(Client).order_by(Client.id)
        if client_id is not None:
            query = query.where(Client.id == client_id)
        result = await db.execute(query)

        for client in result.scalars().all():
            drift = await AggregateMaintainer.find_drift(db, client)
            if drift or client.is_frozen:
                findings.append((client.id, client.name, drift, client.frozen_reason))
    return findings


async def reconcile(client_id: int = None, fix: bool = False) -> int:
    print("🔍 Checking client aggregates...")
    findings = await find_drifted_clients(client_id)

    if not findings:
        print("✅ All client aggregates match their ledgers")
        return 0

    for found_id, name, drift, frozen_reason in findings:
        print(f"⚠️  Client {found_id} ({name})")
        if frozen_reason:
            print(f"   frozen: {frozen_reason}")
        for field, values in drift.items():
            print(f"   {field}: stored={values['stored']} expected={values['expected']}")

    if not fix:
        print(f"\n{len(findings)} client(s) need reconciliation; rerun with --fix to repair")
        return 1

    guard = ConsistencyGuard(AsyncSessionLocal)
    for found_id, _, _, _ in findings:
        result = await guard.reconcile_client(found_id, actor_id="reconcile-script")
        print(f"✅ Client {found_id} reconciled: balance={result.balance} ({result.transaction_count} entries)")
    return 0


async def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile client ledger aggregates")
    parser.add_argument("--client-id", type=int, default=None, help="Only check this client")
    parser.add_argument("--fix", action="store_true", help="Repair drifted and frozen clients")
    args = parser.parse_args(argv)

    try:
        return await reconcile(client_id=args.client_id, fix=args.fix)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
