from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import UUID4
from typing import Optional
import logging

from sqlmodel.ext.asyncio.session import AsyncSession
from app.core.db import get_async_session
from app.api.deps import create_validation_error_detail, get_current_user
from app.models.user import User as UserModel
from app.crud.wallets import WalletNotFound, WalletVersionConflict
from app.schemas.openapi_schemas import ReconciliationReport, WalletReconciliation
from app.services.reconciler import reconcile_user_wallets, sync_all_wallets, sync_wallet

api_logger = logging.getLogger("api")

router = APIRouter(prefix="/api/v1/wallets", tags=["wallet"])


def conflict_error(e: WalletVersionConflict) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=create_validation_error_detail(["wallet", str(e.wallet_id)], str(e), "version_conflict")
    )


@router.get("/reconciliation",
            response_model=ReconciliationReport,
            summary="Reconcile Wallets",
            description="Compare each stored wallet balance with the sum of its settled transactions.")
async def get_reconciliation(
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        return await reconcile_user_wallets(session, user.uuid)
    except Exception as e:
        api_logger.error(f'Error reconciling wallets for user {user.uuid}', exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during wallet reconciliation."
        )


@router.post("/sync",
             response_model=ReconciliationReport,
             summary="Fix All",
             description="Correct every drifted wallet of the user in one transaction.")
async def sync_all(
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        report = await sync_all_wallets(session, user.uuid)
        await session.commit()
        return report
    except WalletVersionConflict as e:
        await session.rollback()
        api_logger.warning(f'Fix all aborted for user {user.uuid}: {e}')
        raise conflict_error(e)
    except Exception as e:
        await session.rollback()
        api_logger.error(f'Critical error during fix all for user {user.uuid}', exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during wallet sync."
        )


@router.post("/{wallet_id}/sync",
             response_model=WalletReconciliation,
             summary="Sync Wallet")
async def sync_one(
    wallet_id: UUID4 = Path(..., title="Wallet Id"),
    expected_version: Optional[int] = Query(None, ge=0),
    user: UserModel = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session)
):
    try:
        row = await sync_wallet(session, wallet_id, user.uuid, expected_version)
        await session.commit()
        return row
    except WalletNotFound as e:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=create_validation_error_detail(["path", "wallet_id"], str(e), "not_found")
        )
    except WalletVersionConflict as e:
        await session.rollback()
        api_logger.warning(f'Wallet sync conflict for user {user.uuid}: {e}')
        raise conflict_error(e)
    except Exception as e:
        await session.rollback()
        api_logger.error(f'Critical error syncing wallet {wallet_id} for user {user.uuid}', exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during wallet sync."
        )
