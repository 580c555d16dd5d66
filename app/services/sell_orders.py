from sqlmodel.ext.asyncio.session import AsyncSession
from uuid import UUID
from datetime import datetime, timezone
from typing import Optional
import logging

from app.core.config import settings
from app.crud.buyback_fund import get_fund_balance
from app.crud.sell_orders import SellOrderError, allocate_fifo_position, get_user_order, peek_next_fifo_position
from app.models.sell_order import OPEN_SELL_ORDER_STATUSES, SellOrder, SellOrderStatus
from app.models.wallet import utcnow
from app.schemas.openapi_schemas import BuybackPower, SellPreview

queue_logger = logging.getLogger("queue")


def classify_buyback_power(fund_balance: float) -> BuybackPower:
    if fund_balance > settings.buyback_power_high:
        return BuybackPower.HIGH
    if fund_balance > settings.buyback_power_moderate:
        return BuybackPower.MODERATE
    return BuybackPower.LOW


async def preview_sell(session: AsyncSession, currency: Optional[str] = None) -> SellPreview:
    currency = currency or settings.default_currency
    fund_balance = await get_fund_balance(session, currency)
    return SellPreview(
        currency=currency,
        next_position=await peek_next_fifo_position(session),
        buyback_funds=fund_balance,
        buyback_power=classify_buyback_power(fund_balance),
        as_of=datetime.now(timezone.utc),
    )


async def place_sell_order(
    session: AsyncSession,
    user_uuid: UUID,
    quantity: int,
    requested_price: float,
    currency: Optional[str] = None,
) -> SellOrder:
    if quantity < 1:
        raise SellOrderError("Quantity must be at least 1")
    if requested_price <= 0:
        raise SellOrderError("Requested price must be positive")

    position = await allocate_fifo_position(session)
    order = SellOrder(
        user_uuid=user_uuid,
        currency=currency or settings.default_currency,
        quantity=quantity,
        remaining_quantity=quantity,
        requested_price=requested_price,
        total_sell_value=quantity * requested_price,
        fifo_position=position,
        status=SellOrderStatus.PENDING,
    )
    session.add(order)
    await session.flush()

    queue_logger.info(
        f'Sell order queued. Order: {order.id}, User: {user_uuid}, Position: {position}, '
        f'Quantity: {quantity}, Value: {order.total_sell_value} {order.currency}'
    )
    return order


async def cancel_sell_order(
    session: AsyncSession, order_id: UUID, user_uuid: UUID, reason: Optional[str] = None
) -> SellOrder:
    order = await get_user_order(session, order_id, user_uuid, lock=True)
    if order.status not in OPEN_SELL_ORDER_STATUSES:
        raise SellOrderError(f"Order is {order.status.value} and cannot be cancelled")

    order.status = SellOrderStatus.CANCELLED
    order.cancel_reason = reason or "User cancellation"
    order.updated_at = utcnow()
    session.add(order)
    await session.flush()

    queue_logger.info(f'Sell order cancelled. Order: {order.id}, User: {user_uuid}, Reason: {order.cancel_reason}')
    return order


async def modify_sell_order_quantity(
    session: AsyncSession,
    order_id: UUID,
    user_uuid: UUID,
    new_quantity: int,
    reason: Optional[str] = None,
) -> SellOrder:
    """Changes the quantity of an untouched pending order and sends it to the back of the queue."""
    if new_quantity < 1:
        raise SellOrderError("Quantity must be at least 1")

    order = await get_user_order(session, order_id, user_uuid, lock=True)
    if order.status != SellOrderStatus.PENDING or order.filled_quantity > 0:
        raise SellOrderError("Only pending orders with no fills can be modified")

    old_position = order.fifo_position
    order.quantity = new_quantity
    order.remaining_quantity = new_quantity
    order.total_sell_value = new_quantity * order.requested_price
    order.fifo_position = await allocate_fifo_position(session)
    order.updated_at = utcnow()
    session.add(order)
    await session.flush()

    queue_logger.info(
        f'Sell order modified. Order: {order.id}, User: {user_uuid}, Quantity: {new_quantity}, '
        f'Position: {old_position} -> {order.fifo_position}, Reason: {reason or "User modification"}'
    )
    return order
