from sqlalchemy import Column, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlmodel import Field, SQLModel
from uuid import UUID, uuid4
from enum import Enum as PyEnum
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransactionStatus(str, PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    APPROVED = "approved"
    FAILED = "failed"


# Statuses meaning "money has moved". Every balance computation uses this set.
SETTLED_TRANSACTION_STATUSES = (TransactionStatus.COMPLETED, TransactionStatus.APPROVED)


class TransactionType(str, PyEnum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    SHARE_SALE = "share_sale"
    ADJUSTMENT = "adjustment"


class SubWalletType(str, PyEnum):
    SHARE_BUYBACK = "share_buyback"
    PROJECT_FUNDING = "project_funding"
    ADMIN_FUND = "admin_fund"


class Wallet(SQLModel, table=True):
    __tablename__ = "wallets"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    user_uuid: UUID = Field(
        sa_column=Column(Uuid, ForeignKey("user.uuid", ondelete="CASCADE"), index=True)
    )
    currency: str = Field(index=True)
    balance: float = 0.0
    version: int = 0
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("user_uuid", "currency", name="unique_user_currency_wallet"),
    )


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    wallet_id: UUID = Field(
        sa_column=Column(Uuid, ForeignKey("wallets.id", ondelete="CASCADE"), index=True)
    )
    user_uuid: UUID = Field(
        sa_column=Column(Uuid, ForeignKey("user.uuid", ondelete="CASCADE"), index=True)
    )
    amount: float
    currency: str
    transaction_type: TransactionType
    status: TransactionStatus = TransactionStatus.PENDING
    reference: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class AdminSubWallet(SQLModel, table=True):
    __tablename__ = "admin_sub_wallets"

    id: Optional[int] = Field(default=None, primary_key=True)
    wallet_type: SubWalletType
    currency: str
    balance: float = 0.0
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("wallet_type", "currency", name="unique_sub_wallet_type_currency"),
    )
