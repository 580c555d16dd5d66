from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from typing import Optional
import logging

from app.models.wallet import AdminSubWallet, SubWalletType, utcnow


buyback_logger = logging.getLogger("buyback")


class InsufficientBuybackFunds(Exception):
    pass


async def get_fund(
    session: AsyncSession, currency: str, lock: bool = False
) -> Optional[AdminSubWallet]:
    stmt = select(AdminSubWallet).where(
        AdminSubWallet.wallet_type == SubWalletType.SHARE_BUYBACK,
        AdminSubWallet.currency == currency,
    )
    if lock:
        stmt = stmt.with_for_update()
    return (await session.exec(stmt)).first()


async def get_fund_balance(session: AsyncSession, currency: str) -> float:
    fund = await get_fund(session, currency)
    return fund.balance if fund else 0.0


async def async_top_up_fund(session: AsyncSession, currency: str, amount: float) -> AdminSubWallet:
    if amount <= 0:
        raise ValueError("Top-up amount must be positive")

    fund = await get_fund(session, currency, lock=True)
    if fund is None:
        fund = AdminSubWallet(wallet_type=SubWalletType.SHARE_BUYBACK, currency=currency, balance=0.0)

    fund.balance += amount
    fund.updated_at = utcnow()
    session.add(fund)
    await session.flush()

    buyback_logger.info(
        f'Buyback fund topped up. Currency: {currency}, Amount: {amount}, Balance after: {fund.balance}'
    )
    return fund


async def async_debit_fund(session: AsyncSession, fund: AdminSubWallet, amount: float) -> AdminSubWallet:
    if amount > fund.balance:
        error_msg = (
            f"Insufficient {fund.currency} buyback funds. Needed {amount}, available {fund.balance}"
        )
        buyback_logger.critical(error_msg)
        raise InsufficientBuybackFunds(error_msg)

    fund.balance -= amount
    fund.updated_at = utcnow()
    session.add(fund)
    return fund
