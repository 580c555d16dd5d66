from sqlalchemy import func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from uuid import UUID
from typing import List, Optional
import logging

from app.models.wallet import (
    SETTLED_TRANSACTION_STATUSES,
    Transaction,
    TransactionStatus,
    TransactionType,
    Wallet,
    utcnow,
)


api_logger = logging.getLogger("api")


class BalanceError(Exception):
    pass


class WalletNotFound(Exception):
    pass


class WalletVersionConflict(Exception):
    """The wallet row changed between reading it and writing the correction."""

    def __init__(self, wallet_id: UUID, expected_version: int):
        self.wallet_id = wallet_id
        self.expected_version = expected_version
        super().__init__(
            f"Wallet {wallet_id} was modified concurrently (expected version {expected_version})"
        )


async def list_user_wallets(session: AsyncSession, user_uuid: UUID) -> List[Wallet]:
    result = await session.exec(
        select(Wallet).where(Wallet.user_uuid == user_uuid).order_by(Wallet.currency.asc())
    )
    return list(result.all())


async def get_wallet(
    session: AsyncSession, wallet_id: UUID, user_uuid: Optional[UUID] = None
) -> Wallet:
    stmt = select(Wallet).where(Wallet.id == wallet_id)
    if user_uuid is not None:
        stmt = stmt.where(Wallet.user_uuid == user_uuid)
    wallet = (await session.exec(stmt)).first()
    if wallet is None:
        raise WalletNotFound(f"Wallet {wallet_id} not found")
    return wallet


async def get_or_create_wallet(
    session: AsyncSession, user_uuid: UUID, currency: str, lock: bool = False
) -> Wallet:
    stmt = select(Wallet).where(Wallet.user_uuid == user_uuid, Wallet.currency == currency)
    if lock:
        stmt = stmt.with_for_update()
    wallet = (await session.exec(stmt)).first()

    if wallet is None:
        wallet = Wallet(user_uuid=user_uuid, currency=currency, balance=0.0)
        session.add(wallet)
        await session.flush()
        api_logger.info(f'Wallet created. User: {user_uuid}, Currency: {currency}')
    return wallet


async def sum_settled_transactions(session: AsyncSession, wallet_id: UUID) -> float:
    result = await session.exec(
        select(func.coalesce(func.sum(Transaction.amount), 0.0)).where(
            Transaction.wallet_id == wallet_id,
            Transaction.status.in_(SETTLED_TRANSACTION_STATUSES),
        )
    )
    return float(result.one())


async def async_apply_ledger_entry(
    session: AsyncSession,
    user_uuid: UUID,
    currency: str,
    amount: float,
    transaction_type: TransactionType,
    reference: Optional[str] = None,
) -> Transaction:
    """Records a settled ledger entry and moves the wallet balance by the same amount."""
    if amount == 0:
        raise BalanceError("Ledger entry amount must be non-zero")

    wallet = await get_or_create_wallet(session, user_uuid, currency, lock=True)

    if wallet.balance + amount < 0:
        error_msg = (
            f"Insufficient {currency} balance. Needed {-amount}, available {wallet.balance}"
        )
        api_logger.warning(error_msg)
        raise BalanceError(error_msg)

    entry = Transaction(
        wallet_id=wallet.id,
        user_uuid=user_uuid,
        amount=amount,
        currency=currency,
        transaction_type=transaction_type,
        status=TransactionStatus.COMPLETED,
        reference=reference,
    )
    wallet.balance += amount
    wallet.version += 1
    wallet.updated_at = utcnow()
    session.add(entry)
    session.add(wallet)
    await session.flush()

    api_logger.info(
        f'Ledger entry applied. User: {user_uuid}, Currency: {currency}, '
        f'Type: {transaction_type.value}, Amount: {amount}, Balance after: {wallet.balance}'
    )
    return entry


async def async_set_balance_if_version(
    session: AsyncSession, wallet_id: UUID, expected_version: int, new_balance: float
) -> None:
    """Compare-and-swap write of a wallet balance keyed on its version."""
    result = await session.execute(
        update(Wallet)
        .where(Wallet.id == wallet_id, Wallet.version == expected_version)
        .values(balance=new_balance, version=Wallet.version + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise WalletVersionConflict(wallet_id, expected_version)
