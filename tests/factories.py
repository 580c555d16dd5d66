from uuid import uuid4

from sqlmodel.ext.asyncio.session import AsyncSession

from app.models.user import User, UserRole
from app.models.sell_order import SellOrder, SellOrderStatus
from app.models.wallet import (
    AdminSubWallet,
    SubWalletType,
    Transaction,
    TransactionStatus,
    TransactionType,
    Wallet,
)


async def make_user(session: AsyncSession, name: str = "Investor One", role: UserRole = UserRole.USER) -> User:
    user = User(name=name, role=role, api_key=f"key-{uuid4()}", is_active=True)
    session.add(user)
    await session.commit()
    return user


def auth(user: User) -> dict:
    return {"Authorization": f"TOKEN {user.api_key}"}


async def make_order(
    session: AsyncSession,
    user: User,
    fifo_position: int,
    total_sell_value: float,
    quantity: int = 100,
    remaining_quantity: int = None,
    status: SellOrderStatus = SellOrderStatus.PENDING,
    currency: str = "UGX",
) -> SellOrder:
    order = SellOrder(
        user_uuid=user.uuid,
        currency=currency,
        quantity=quantity,
        remaining_quantity=quantity if remaining_quantity is None else remaining_quantity,
        requested_price=total_sell_value / quantity,
        total_sell_value=total_sell_value,
        fifo_position=fifo_position,
        status=status,
    )
    session.add(order)
    await session.commit()
    return order


async def fund_buyback(session: AsyncSession, balance: float, currency: str = "UGX") -> AdminSubWallet:
    fund = AdminSubWallet(wallet_type=SubWalletType.SHARE_BUYBACK, currency=currency, balance=balance)
    session.add(fund)
    await session.commit()
    return fund


async def make_wallet(
    session: AsyncSession,
    user: User,
    stored_balance: float,
    amounts=(),
    status: TransactionStatus = TransactionStatus.COMPLETED,
    currency: str = "UGX",
) -> Wallet:
    wallet = Wallet(user_uuid=user.uuid, currency=currency, balance=stored_balance)
    session.add(wallet)
    await session.flush()
    for amount in amounts:
        await add_transaction(session, wallet, amount, status, commit=False)
    await session.commit()
    return wallet


async def add_transaction(
    session: AsyncSession,
    wallet: Wallet,
    amount: float,
    status: TransactionStatus = TransactionStatus.COMPLETED,
    commit: bool = True,
) -> Transaction:
    entry = Transaction(
        wallet_id=wallet.id,
        user_uuid=wallet.user_uuid,
        amount=amount,
        currency=wallet.currency,
        transaction_type=TransactionType.DEPOSIT if amount >= 0 else TransactionType.WITHDRAWAL,
        status=status,
    )
    session.add(entry)
    if commit:
        await session.commit()
    return entry


