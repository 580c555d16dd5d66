"""FIFO queue position and settlement wait-time estimate for share sell orders.

The wait estimate is a business heuristic with three breakpoints:
fully funded orders settle in ``wait_days_funded`` days, orders whose queue
ahead is covered but not the order itself interpolate up to
``wait_days_partial``, and anything less interpolates up to
``wait_days_worst``. An empty fund is always the worst case.
"""
from sqlmodel.ext.asyncio.session import AsyncSession
from uuid import UUID
from datetime import datetime, timezone
from typing import Optional
import logging

from app.core.config import settings
from app.crud.buyback_fund import get_fund_balance
from app.crud.sell_orders import get_latest_pending_order, sum_pending_value_ahead
from app.schemas.openapi_schemas import FundingBand, QueueStatus

queue_logger = logging.getLogger("queue")


def classify_funding(buyback_funds: float, value_ahead: float, order_value: float) -> FundingBand:
    if buyback_funds <= 0:
        return FundingBand.UNFUNDED
    if buyback_funds >= value_ahead + order_value:
        return FundingBand.FULLY_FUNDED
    if buyback_funds >= value_ahead:
        return FundingBand.PARTIALLY_FUNDED
    return FundingBand.UNDERFUNDED


def estimate_wait_days(
    buyback_funds: float,
    value_ahead: float,
    order_value: float,
    funded_days: Optional[float] = None,
    partial_days: Optional[float] = None,
    worst_days: Optional[float] = None,
) -> float:
    funded_days = settings.wait_days_funded if funded_days is None else funded_days
    partial_days = settings.wait_days_partial if partial_days is None else partial_days
    worst_days = settings.wait_days_worst if worst_days is None else worst_days

    band = classify_funding(buyback_funds, value_ahead, order_value)
    if band == FundingBand.UNFUNDED:
        return worst_days
    if band == FundingBand.FULLY_FUNDED:
        return funded_days

    # total > 0 here: funds > 0 and funds < total
    coverage = buyback_funds / (value_ahead + order_value)
    if band == FundingBand.PARTIALLY_FUNDED:
        return partial_days - (partial_days - funded_days) * coverage
    return worst_days - (worst_days - partial_days) * coverage


def no_active_order(as_of: Optional[datetime] = None) -> QueueStatus:
    return QueueStatus(
        has_active_order=False,
        as_of=as_of or datetime.now(timezone.utc),
        poll_interval_seconds=settings.queue_poll_interval_seconds,
    )


async def get_queue_status(session: AsyncSession, user_uuid: UUID) -> QueueStatus:
    """Snapshot of the user's most recent pending sell order.

    Read failures are logged and reported as "no active order".
    """
    as_of = datetime.now(timezone.utc)
    try:
        order = await get_latest_pending_order(session, user_uuid)
        if order is None:
            return no_active_order(as_of)

        value_ahead = await sum_pending_value_ahead(session, order.fifo_position)
        buyback_funds = await get_fund_balance(session, order.currency)
    except Exception as e:
        queue_logger.error(f'Failed to load queue status for user {user_uuid}', exc_info=e)
        return no_active_order(as_of)

    order_value = order.total_sell_value
    wait_days = estimate_wait_days(buyback_funds, value_ahead, order_value)

    queue_logger.debug(
        f'Queue status computed. User: {user_uuid}, Position: {order.fifo_position}, '
        f'Value ahead: {value_ahead}, Funds: {buyback_funds}, Wait: {wait_days:.2f} days'
    )

    return QueueStatus(
        has_active_order=True,
        as_of=as_of,
        poll_interval_seconds=settings.queue_poll_interval_seconds,
        order_id=order.id,
        currency=order.currency,
        queue_position=order.fifo_position,
        quantity=order.quantity,
        filled_quantity=order.filled_quantity,
        order_value=order_value,
        value_ahead=value_ahead,
        buyback_funds=buyback_funds,
        estimated_wait_days=wait_days,
        funding_band=classify_funding(buyback_funds, value_ahead, order_value),
    )
