from sqlmodel.ext.asyncio.session import AsyncSession
from uuid import UUID
from datetime import datetime, timezone
from typing import List, Optional
import logging

from app.core.config import settings
from app.crud.wallets import (
    WalletVersionConflict,
    async_set_balance_if_version,
    get_wallet,
    list_user_wallets,
    sum_settled_transactions,
)
from app.models.wallet import Wallet
from app.schemas.openapi_schemas import ReconciliationReport, WalletReconciliation

reconciler_logger = logging.getLogger("reconciler")


def compare_balances(
    stored_balance: float, calculated_balance: float, tolerance: Optional[float] = None
) -> tuple[float, bool]:
    tolerance = settings.reconcile_tolerance if tolerance is None else tolerance
    difference = abs(calculated_balance - stored_balance)
    return difference, difference > tolerance


async def reconcile_wallet(session: AsyncSession, wallet: Wallet) -> WalletReconciliation:
    calculated = await sum_settled_transactions(session, wallet.id)
    difference, needs_sync = compare_balances(wallet.balance, calculated)
    if needs_sync:
        reconciler_logger.warning(
            f'Wallet drift detected. Wallet: {wallet.id}, Currency: {wallet.currency}, '
            f'Stored: {wallet.balance}, Calculated: {calculated}, Difference: {difference}'
        )
    return WalletReconciliation(
        wallet_id=wallet.id,
        currency=wallet.currency,
        stored_balance=wallet.balance,
        calculated_balance=calculated,
        difference=difference,
        needs_sync=needs_sync,
        version=wallet.version,
    )


async def reconcile_user_wallets(session: AsyncSession, user_uuid: UUID) -> ReconciliationReport:
    """Recomputes every wallet of a user from its settled transactions.

    A failure on any wallet propagates and aborts the whole report.
    """
    as_of = datetime.now(timezone.utc)
    wallets = await list_user_wallets(session, user_uuid)

    rows: List[WalletReconciliation] = []
    for wallet in wallets:
        rows.append(await reconcile_wallet(session, wallet))

    flagged = [r for r in rows if r.needs_sync]
    reconciler_logger.info(
        f'Reconciliation for user {user_uuid}: {len(rows)} wallets, {len(flagged)} need sync'
    )
    return ReconciliationReport(
        user_id=user_uuid,
        as_of=as_of,
        wallets=rows,
        wallets_needing_sync=len(flagged),
        total_drift=sum(r.difference for r in flagged),
    )


async def _write_correction(session: AsyncSession, wallet: Wallet, row: WalletReconciliation) -> WalletReconciliation:
    await async_set_balance_if_version(session, wallet.id, row.version, row.calculated_balance)
    await session.refresh(wallet)

    reconciler_logger.info(
        f'Wallet balance corrected. Wallet: {wallet.id}, Currency: {wallet.currency}, '
        f'From: {row.stored_balance}, To: {row.calculated_balance}, Version: {wallet.version}'
    )
    return WalletReconciliation(
        wallet_id=wallet.id,
        currency=wallet.currency,
        stored_balance=wallet.balance,
        calculated_balance=row.calculated_balance,
        difference=0.0,
        needs_sync=False,
        version=wallet.version,
    )


async def sync_wallet(
    session: AsyncSession,
    wallet_id: UUID,
    user_uuid: Optional[UUID] = None,
    expected_version: Optional[int] = None,
) -> WalletReconciliation:
    """Overwrites the stored balance with the calculated one if the wallet drifted.

    ``expected_version`` is the version the caller saw; without it the version
    read here is used. Raises ``WalletVersionConflict`` if the row changed,
    even when there is nothing to correct.
    """
    wallet = await get_wallet(session, wallet_id, user_uuid)
    if expected_version is not None and expected_version != wallet.version:
        raise WalletVersionConflict(wallet.id, expected_version)

    row = await reconcile_wallet(session, wallet)

    if not row.needs_sync:
        return row
    return await _write_correction(session, wallet, row)


async def sync_all_wallets(session: AsyncSession, user_uuid: UUID) -> ReconciliationReport:
    as_of = datetime.now(timezone.utc)
    wallets = await list_user_wallets(session, user_uuid)

    rows: List[WalletReconciliation] = []
    total_drift = 0.0
    corrected = 0
    for wallet in wallets:
        row = await reconcile_wallet(session, wallet)
        if row.needs_sync:
            total_drift += row.difference
            corrected += 1
            row = await _write_correction(session, wallet, row)
        rows.append(row)

    reconciler_logger.info(f'Fix all for user {user_uuid}: {corrected} wallets corrected')
    return ReconciliationReport(
        user_id=user_uuid,
        as_of=as_of,
        wallets=rows,
        wallets_needing_sync=0,
        total_drift=total_drift,
    )
