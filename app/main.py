from fastapi import FastAPI
from contextlib import asynccontextmanager
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from app.core.logging_config import setup_logging
from app.core.config import settings
from app.core.db import async_engine
from app.api import routes_public, routes_admin, routes_queue, routes_wallet
from app.models.user import User as UserModel, UserRole
from app.models.wallet import AdminSubWallet, SubWalletType
from app.services.queue_poller import queue_pollers
from uuid import uuid4
setup_logging()

import logging
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    async with AsyncSession(async_engine) as session:

        admin_check = await session.exec(
            select(UserModel).where(UserModel.role == UserRole.ADMIN)
        )
        if not admin_check.first():
            admin_key = f"key-{uuid4()}"
            admin = UserModel(
                name="Admin User",
                role=UserRole.ADMIN,
                api_key=admin_key,
                is_active=True
            )
            session.add(admin)
            logger.warning(f"Bootstrap admin created. API KEY: TOKEN {admin_key}")

        fund_check = await session.exec(
            select(AdminSubWallet).where(
                AdminSubWallet.wallet_type == SubWalletType.SHARE_BUYBACK,
                AdminSubWallet.currency == settings.default_currency,
            )
        )
        if not fund_check.first():
            session.add(AdminSubWallet(
                wallet_type=SubWalletType.SHARE_BUYBACK,
                currency=settings.default_currency,
                balance=0.0,
            ))

        await session.commit()

    yield

    await queue_pollers.stop_all()

app = FastAPI(
    title=settings.app_name,
    version="0.1",
    lifespan=lifespan,
)

app.include_router(routes_public.router)
app.include_router(routes_queue.router)
app.include_router(routes_wallet.router)
app.include_router(routes_admin.router)
