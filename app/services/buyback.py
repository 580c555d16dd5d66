import math
import logging
from typing import List, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.crud.buyback_fund import InsufficientBuybackFunds, async_debit_fund, get_fund
from app.crud.sell_orders import list_open_queue
from app.crud.wallets import async_apply_ledger_entry
from app.models.sell_order import SellOrder, SellOrderStatus
from app.models.wallet import TransactionType, utcnow
from app.schemas.openapi_schemas import BuybackBatchResult, SettledOrder

buyback_logger = logging.getLogger("buyback")


def payable_shares(order: SellOrder, available_funds: float) -> int:
    if order.requested_price <= 0 or available_funds <= 0:
        return 0
    affordable = math.floor(available_funds / order.requested_price)
    if affordable * order.requested_price > available_funds:
        affordable -= 1
    return max(0, min(order.remaining_quantity, affordable))


async def _settle(session: AsyncSession, order: SellOrder, shares: int, amount: float) -> SettledOrder:
    order.remaining_quantity -= shares
    order.status = SellOrderStatus.COMPLETED if order.remaining_quantity == 0 else SellOrderStatus.PARTIAL
    order.updated_at = utcnow()
    if order.status == SellOrderStatus.COMPLETED:
        order.processed_at = order.updated_at
    session.add(order)

    await async_apply_ledger_entry(
        session,
        order.user_uuid,
        order.currency,
        amount,
        TransactionType.SHARE_SALE,
        reference=f"sell_order:{order.id}",
    )

    buyback_logger.info(
        f'Sell order settled. Order: {order.id}, Position: {order.fifo_position}, '
        f'Shares: {shares}, Amount: {amount} {order.currency}, Status: {order.status.value}'
    )
    return SettledOrder(
        order_id=order.id,
        user_id=order.user_uuid,
        fifo_position=order.fifo_position,
        shares_paid=shares,
        amount_paid=amount,
        status=order.status,
    )


async def process_buyback_batch(
    session: AsyncSession, currency: Optional[str] = None, max_orders: Optional[int] = None
) -> BuybackBatchResult:
    """Pays open sell orders from the buyback fund in strict FIFO order.

    Stops at the first order the remaining fund cannot pay at least one share of,
    so no later order is ever paid ahead of an earlier one.
    """
    currency = currency or settings.default_currency
    max_orders = max_orders or settings.buyback_max_orders_per_batch

    fund = await get_fund(session, currency, lock=True)
    balance_before = fund.balance if fund else 0.0

    if fund is None or balance_before <= 0 or balance_before < settings.buyback_min_fund_threshold:
        error_msg = (
            f"Insufficient {currency} buyback funds: {balance_before}. "
            f"Minimum threshold: {settings.buyback_min_fund_threshold}"
        )
        buyback_logger.warning(error_msg)
        raise InsufficientBuybackFunds(error_msg)

    orders = await list_open_queue(session, currency=currency, limit=max_orders, lock=True)

    settled: List[SettledOrder] = []
    total_paid = 0.0
    for order in orders:
        shares = payable_shares(order, fund.balance)
        if shares <= 0:
            break

        amount = shares * order.requested_price
        await async_debit_fund(session, fund, amount)
        settled.append(await _settle(session, order, shares, amount))
        total_paid += amount

    await session.flush()

    buyback_logger.info(
        f'Buyback batch processed. Currency: {currency}, Orders: {len(settled)}, '
        f'Paid: {total_paid}, Fund: {balance_before} -> {fund.balance}'
    )
    return BuybackBatchResult(
        currency=currency,
        processed_count=len(settled),
        total_paid=total_paid,
        fund_balance_before=balance_before,
        fund_balance_after=fund.balance,
        settled=settled,
    )
