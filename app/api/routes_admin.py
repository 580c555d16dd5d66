from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from uuid import UUID
from typing import List, Optional
import logging

from app.core.config import settings
from app.core.db import get_async_session
from app.api.deps import create_validation_error_detail, get_current_admin
from app.api.routes_wallet import conflict_error
from app.models.user import User as UserModel
from app.models.wallet import TransactionType
from app.crud.buyback_fund import InsufficientBuybackFunds, async_top_up_fund, get_fund_balance
from app.crud.sell_orders import list_open_queue
from app.crud.wallets import BalanceError, WalletVersionConflict, async_apply_ledger_entry
from app.schemas.openapi_schemas import (
    BuybackBatchResult, BuybackProcessBody, FundBalance, FundTopUpBody, Ok,
    ReconciliationReport, SellOrderOut,
    Body_deposit_api_v1_admin_wallet_deposit_post as DepositBody,
    Body_withdraw_api_v1_admin_wallet_withdraw_post as WithdrawBody
)
from app.services.buyback import process_buyback_batch
from app.services.reconciler import reconcile_user_wallets, sync_all_wallets

api_logger = logging.getLogger("api")

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


async def _get_active_user(session: AsyncSession, user_id: UUID, admin_uuid_str: str) -> UserModel:
    user = (await session.exec(select(UserModel).where(UserModel.uuid == user_id))).first()
    if not user or not user.is_active:
        status_detail = "not found" if not user else "inactive"
        api_logger.warning(f'Admin {admin_uuid_str} request for user {user_id} failed: User {status_detail}.')
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/sell-orders/queue",
            response_model=List[SellOrderOut],
            summary="Sell Queue",
            tags=["sell-order"],
            description="Open sell orders in FIFO order.")
async def sell_queue(
    currency: Optional[str] = Query(None),
    admin_user: UserModel = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        orders = await list_open_queue(session, currency=currency)
        return [SellOrderOut.model_validate(o) for o in orders]
    except Exception as e:
        api_logger.error(f'Error loading sell queue for admin {admin_user.uuid}', exc_info=e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error loading sell queue.")


@router.get("/buyback/fund/{currency}",
            response_model=FundBalance,
            summary="Buyback Fund Balance",
            tags=["buyback"])
async def buyback_fund_balance(
    currency: str = Path(..., title="Currency"),
    admin_user: UserModel = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        return FundBalance(currency=currency, balance=await get_fund_balance(session, currency))
    except Exception as e:
        api_logger.error(f'Error loading {currency} buyback fund for admin {admin_user.uuid}', exc_info=e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error loading fund balance.")


@router.post("/buyback/fund/top-up",
             response_model=FundBalance,
             summary="Top Up Buyback Fund",
             tags=["buyback"])
async def top_up_buyback_fund(
    body: FundTopUpBody,
    admin_user: UserModel = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session)
):
    admin_uuid_str = str(admin_user.uuid)
    currency = body.currency or settings.default_currency
    try:
        fund = await async_top_up_fund(session, currency, body.amount)
        balance = fund.balance
        await session.commit()

        api_logger.info(f'Buyback fund top-up by admin {admin_uuid_str}. Currency: {currency}, Amount: {body.amount}')
        return FundBalance(currency=currency, balance=balance)
    except Exception as e:
        await session.rollback()
        api_logger.error(f'Critical error topping up {currency} buyback fund by admin {admin_uuid_str}', exc_info=e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error during fund top-up.")


@router.post("/buyback/process",
             response_model=BuybackBatchResult,
             summary="Process Buyback Batch",
             tags=["buyback"],
             description="Pay open sell orders from the buyback fund in FIFO order.")
async def process_buyback(
    body: BuybackProcessBody,
    admin_user: UserModel = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session)
):
    admin_uuid_str = str(admin_user.uuid)
    try:
        result = await process_buyback_batch(session, body.currency, body.max_orders)
        await session.commit()

        api_logger.info(
            f'Buyback batch by admin {admin_uuid_str}. Currency: {result.currency}, '
            f'Orders: {result.processed_count}, Paid: {result.total_paid}'
        )
        return result
    except InsufficientBuybackFunds as e:
        await session.rollback()
        api_logger.warning(f'Buyback batch by admin {admin_uuid_str} aborted: {e}')
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=create_validation_error_detail(["body", "currency"], str(e), "insufficient_funds")
        )
    except Exception as e:
        await session.rollback()
        api_logger.error(f'Critical error processing buyback batch by admin {admin_uuid_str}', exc_info=e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error during buyback processing.")


@router.post("/wallet/deposit",
             response_model=Ok,
             summary="Deposit",
             tags=["wallet"],
             description="Credit a user's wallet with a settled deposit.")
async def deposit(
    body: DepositBody,
    admin_user: UserModel = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session)
):
    admin_uuid_str = str(admin_user.uuid)

    try:
        await _get_active_user(session, body.user_id, admin_uuid_str)
        await async_apply_ledger_entry(
            session, body.user_id, body.currency, body.amount, TransactionType.DEPOSIT,
            reference=f"admin:{admin_uuid_str}"
        )
        await session.commit()

        api_logger.info(
            f'Deposit successful by admin {admin_uuid_str}. Target User ID: {body.user_id}, Currency: {body.currency}, Amount: {body.amount}'
        )
        return Ok()

    except HTTPException:
        raise
    except Exception as e:
        await session.rollback()
        api_logger.error(
            f'Critical error during deposit for {body.user_id} of {body.amount} {body.currency} by admin {admin_uuid_str}',
            exc_info=e
        )
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error during wallet deposit.")


@router.post("/wallet/withdraw",
             response_model=Ok,
             summary="Withdraw",
             tags=["wallet"],
             description="Debit a user's wallet with a settled withdrawal.")
async def withdraw(
    body: WithdrawBody,
    admin_user: UserModel = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session)
):
    admin_uuid_str = str(admin_user.uuid)

    try:
        await _get_active_user(session, body.user_id, admin_uuid_str)
        await async_apply_ledger_entry(
            session, body.user_id, body.currency, -body.amount, TransactionType.WITHDRAWAL,
            reference=f"admin:{admin_uuid_str}"
        )
        await session.commit()

        api_logger.info(
            f'Withdrawal successful by admin {admin_uuid_str}. Target User ID: {body.user_id}, Currency: {body.currency}, Amount: {body.amount}'
        )
        return Ok()
    except HTTPException:
        raise
    except BalanceError as e:
        await session.rollback()
        api_logger.warning(f'Admin {admin_uuid_str} failed withdraw from {body.user_id}: {e}')
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=create_validation_error_detail(["body", "amount"], str(e), "balance_error")
        )
    except Exception as e:
        await session.rollback()
        api_logger.error(
            f'Critical error during withdraw for {body.user_id} of {body.amount} {body.currency} by admin {admin_uuid_str}',
            exc_info=e
        )
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error during wallet withdrawal.")


@router.get("/reconciliation/{user_id}",
            response_model=ReconciliationReport,
            summary="Reconcile User Wallets",
            tags=["wallet"])
async def reconcile_user(
    user_id: UUID = Path(..., title="User Id"),
    admin_user: UserModel = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session)
):
    admin_uuid_str = str(admin_user.uuid)
    try:
        await _get_active_user(session, user_id, admin_uuid_str)
        return await reconcile_user_wallets(session, user_id)
    except HTTPException:
        raise
    except Exception as e:
        api_logger.error(f'Error reconciling wallets of {user_id} by admin {admin_uuid_str}', exc_info=e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error during wallet reconciliation.")


@router.post("/reconciliation/{user_id}/sync",
             response_model=ReconciliationReport,
             summary="Fix All User Wallets",
             tags=["wallet"])
async def sync_user(
    user_id: UUID = Path(..., title="User Id"),
    admin_user: UserModel = Depends(get_current_admin),
    session: AsyncSession = Depends(get_async_session)
):
    admin_uuid_str = str(admin_user.uuid)
    try:
        await _get_active_user(session, user_id, admin_uuid_str)
        report = await sync_all_wallets(session, user_id)
        await session.commit()

        api_logger.info(f'Wallets of {user_id} synced by admin {admin_uuid_str}. Drift corrected: {report.total_drift}')
        return report
    except HTTPException:
        raise
    except WalletVersionConflict as e:
        await session.rollback()
        api_logger.warning(f'Admin {admin_uuid_str} sync of {user_id} aborted: {e}')
        raise conflict_error(e)
    except Exception as e:
        await session.rollback()
        api_logger.error(f'Critical error syncing wallets of {user_id} by admin {admin_uuid_str}', exc_info=e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error during wallet sync.")
