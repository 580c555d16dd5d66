from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from uuid import UUID
from typing import List, Optional

from app.models.sell_order import OPEN_SELL_ORDER_STATUSES, SellOrder, SellOrderStatus, SellQueueCounter

SELL_QUEUE_COUNTER = "share_sell_orders"


class SellOrderError(Exception):
    pass


class SellOrderNotFound(SellOrderError):
    pass


async def get_latest_pending_order(session: AsyncSession, user_uuid: UUID) -> Optional[SellOrder]:
    result = await session.exec(
        select(SellOrder)
        .where(SellOrder.user_uuid == user_uuid, SellOrder.status == SellOrderStatus.PENDING)
        .order_by(SellOrder.created_at.desc(), SellOrder.fifo_position.desc())
        .limit(1)
    )
    return result.first()


async def sum_pending_value_ahead(session: AsyncSession, fifo_position: int) -> float:
    result = await session.exec(
        select(func.coalesce(func.sum(SellOrder.total_sell_value), 0.0)).where(
            SellOrder.status == SellOrderStatus.PENDING,
            SellOrder.fifo_position < fifo_position,
        )
    )
    return float(result.one())


async def _max_assigned_position(session: AsyncSession) -> int:
    result = await session.exec(select(func.max(SellOrder.fifo_position)))
    return result.one() or 0


async def peek_next_fifo_position(session: AsyncSession) -> int:
    """Position the next order would get. Does not reserve it."""
    counter = await session.get(SellQueueCounter, SELL_QUEUE_COUNTER)
    last = counter.last_position if counter else 0
    return max(last, await _max_assigned_position(session)) + 1


async def allocate_fifo_position(session: AsyncSession) -> int:
    """Reserves the next queue position under a row lock on the counter.

    Positions are never reused, including those of closed orders.
    """
    result = await session.exec(
        select(SellQueueCounter)
        .where(SellQueueCounter.name == SELL_QUEUE_COUNTER)
        .with_for_update()
    )
    counter = result.first()
    if counter is None:
        counter = SellQueueCounter(name=SELL_QUEUE_COUNTER)

    counter.last_position = max(counter.last_position, await _max_assigned_position(session)) + 1
    session.add(counter)
    await session.flush()
    return counter.last_position


async def list_user_orders(session: AsyncSession, user_uuid: UUID) -> List[SellOrder]:
    result = await session.exec(
        select(SellOrder)
        .where(SellOrder.user_uuid == user_uuid)
        .order_by(SellOrder.fifo_position.asc())
    )
    return list(result.all())


async def list_open_queue(
    session: AsyncSession,
    currency: Optional[str] = None,
    limit: Optional[int] = None,
    lock: bool = False,
) -> List[SellOrder]:
    stmt = select(SellOrder).where(SellOrder.status.in_(OPEN_SELL_ORDER_STATUSES))
    if currency is not None:
        stmt = stmt.where(SellOrder.currency == currency)
    stmt = stmt.order_by(SellOrder.fifo_position.asc())
    if limit is not None:
        stmt = stmt.limit(limit)
    if lock:
        stmt = stmt.with_for_update()
    result = await session.exec(stmt)
    return list(result.all())


async def get_user_order(
    session: AsyncSession, order_id: UUID, user_uuid: UUID, lock: bool = False
) -> SellOrder:
    stmt = select(SellOrder).where(SellOrder.id == order_id, SellOrder.user_uuid == user_uuid)
    if lock:
        stmt = stmt.with_for_update()
    order = (await session.exec(stmt)).first()
    if order is None:
        raise SellOrderNotFound("Sell order not found or access denied.")
    return order
