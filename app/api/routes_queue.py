from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status
from pydantic import UUID4
from typing import List, Optional
import logging

from sqlmodel.ext.asyncio.session import AsyncSession
from app.core.db import get_async_session
from app.api.deps import create_validation_error_detail, get_current_user
from app.models.user import User as UserModel
from app.crud.sell_orders import SellOrderError, SellOrderNotFound, list_user_orders
from app.schemas.openapi_schemas import (
    ModifySellOrderBody, Ok, QueueStatus, SellOrderBody, SellOrderOut, SellPreview
)
from app.services.queue_estimator import get_queue_status
from app.services.queue_poller import QueuePollerRegistry, get_queue_pollers
from app.services.sell_orders import (
    cancel_sell_order as service_cancel_sell_order,
    modify_sell_order_quantity,
    place_sell_order,
    preview_sell,
)

api_logger = logging.getLogger("api")

router = APIRouter(prefix="/api/v1", tags=["queue"])


@router.get("/queue/status",
            response_model=QueueStatus,
            summary="Queue Status",
            description="Queue position and estimated settlement wait of the user's most recent pending sell order.")
async def queue_status(
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    return await get_queue_status(session, user.uuid)


@router.post("/queue/watch",
             response_model=QueueStatus,
             summary="Watch Queue Status",
             description="Start refreshing the user's queue status in the background every poll interval.")
async def watch_queue_status(
    user: UserModel = Depends(get_current_user),
    pollers: QueuePollerRegistry = Depends(get_queue_pollers),
    session: AsyncSession = Depends(get_async_session)
):
    pollers.subscribe(user.uuid)
    api_logger.info(f'Queue watch started. User ID: {user.uuid}')
    return await get_queue_status(session, user.uuid)


@router.get("/queue/watch",
            response_model=QueueStatus,
            summary="Latest Watched Queue Status",
            description="Most recent snapshot produced by the user's background refresh.")
async def latest_queue_status(
    user: UserModel = Depends(get_current_user),
    pollers: QueuePollerRegistry = Depends(get_queue_pollers)
):
    status_snapshot = pollers.latest(user.uuid)
    if status_snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=create_validation_error_detail(["queue", "watch"], "No queue status refreshed yet", "not_watching")
        )
    return status_snapshot


@router.delete("/queue/watch",
               response_model=Ok,
               summary="Stop Watching Queue Status")
async def unwatch_queue_status(
    user: UserModel = Depends(get_current_user),
    pollers: QueuePollerRegistry = Depends(get_queue_pollers)
):
    if await pollers.unsubscribe(user.uuid):
        api_logger.info(f'Queue watch stopped. User ID: {user.uuid}')
    return Ok()


@router.get("/queue/preview",
            response_model=SellPreview,
            summary="Sell Preview",
            description="Next queue position and buyback power before placing a sell order.")
async def queue_preview(
    currency: Optional[str] = Query(None),
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        return await preview_sell(session, currency)
    except Exception as e:
        api_logger.error(f'Error building sell preview for user {user.uuid}', exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading queue preview."
        )


@router.post("/sell-orders",
             response_model=SellOrderOut,
             status_code=status.HTTP_201_CREATED,
             summary="Place Sell Order",
             tags=["sell-order"])
async def create_sell_order(
    body: SellOrderBody,
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    user_uuid_str = str(user.uuid)
    try:
        order = await place_sell_order(
            session, user.uuid, body.quantity, body.requested_price, body.currency
        )
        await session.commit()
        await session.refresh(order)
        return SellOrderOut.model_validate(order)
    except SellOrderError as e:
        await session.rollback()
        api_logger.warning(f'Sell order rejected for user {user_uuid_str}: {e}')
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=create_validation_error_detail(["body"], str(e), "sell_order_error")
        )
    except Exception as e:
        await session.rollback()
        api_logger.error(f'Critical error placing sell order for user {user_uuid_str}', exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during sell order placement."
        )


@router.get("/sell-orders",
            response_model=List[SellOrderOut],
            summary="List Sell Orders",
            tags=["sell-order"])
async def list_sell_orders(
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        orders = await list_user_orders(session, user.uuid)
        api_logger.info(f'Sell orders listed. User ID: {user.uuid}, Count: {len(orders)}')
        return [SellOrderOut.model_validate(o) for o in orders]
    except Exception as e:
        api_logger.error(f'Error listing sell orders for user {user.uuid}', exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error fetching sell order list."
        )


@router.patch("/sell-orders/{order_id}",
              response_model=SellOrderOut,
              summary="Modify Sell Order",
              description="Change the quantity of a pending order. The order moves to the back of the queue.",
              tags=["sell-order"])
async def modify_sell_order(
    body: ModifySellOrderBody,
    order_id: UUID4 = Path(..., title="Order Id"),
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        order = await modify_sell_order_quantity(session, order_id, user.uuid, body.quantity, body.reason)
        await session.commit()
        await session.refresh(order)
        return SellOrderOut.model_validate(order)
    except SellOrderNotFound as e:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=create_validation_error_detail(["path", "order_id"], str(e), "not_found")
        )
    except SellOrderError as e:
        await session.rollback()
        api_logger.warning(f'Modification of order {order_id} rejected for user {user.uuid}: {e}')
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=create_validation_error_detail(["path", "order_id"], str(e), "modify_error")
        )
    except Exception as e:
        await session.rollback()
        api_logger.error(f'Critical error modifying order {order_id} for user {user.uuid}', exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during sell order modification."
        )


@router.delete("/sell-orders/{order_id}",
               response_model=Ok,
               summary="Cancel Sell Order",
               tags=["sell-order"])
async def cancel_sell_order(
    order_id: UUID4 = Path(..., title="Order Id"),
    reason: Optional[str] = Body(None, embed=True),
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        await service_cancel_sell_order(session, order_id, user.uuid, reason)
        await session.commit()
    except SellOrderNotFound as e:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=create_validation_error_detail(["path", "order_id"], str(e), "not_found")
        )
    except SellOrderError as e:
        await session.rollback()
        api_logger.warning(f'Cancellation of order {order_id} rejected for user {user.uuid}: {e}')
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=create_validation_error_detail(["path", "order_id"], str(e), "cancel_error")
        )
    except Exception as e:
        await session.rollback()
        api_logger.error(f'Critical error cancelling order {order_id} for user {user.uuid}', exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during sell order cancellation."
        )
    return Ok()
