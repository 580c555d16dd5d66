from sqlalchemy import Column, DateTime, ForeignKey, Uuid
from sqlmodel import Field, SQLModel
from uuid import UUID, uuid4
from enum import Enum as PyEnum
from datetime import datetime
from typing import Optional

from app.models.wallet import utcnow


class SellOrderStatus(str, PyEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_SELL_ORDER_STATUSES = (SellOrderStatus.PENDING, SellOrderStatus.PARTIAL)


class SellOrder(SQLModel, table=True):
    __tablename__ = "share_sell_orders"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    user_uuid: UUID = Field(
        sa_column=Column(Uuid, ForeignKey("user.uuid", ondelete="CASCADE"), index=True)
    )
    currency: str = Field(index=True)

    quantity: int
    remaining_quantity: int
    requested_price: float
    total_sell_value: float
    fifo_position: int = Field(index=True, unique=True)

    status: SellOrderStatus = SellOrderStatus.PENDING
    cancel_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    processed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))

    @property
    def filled_quantity(self) -> int:
        return self.quantity - self.remaining_quantity


class SellQueueCounter(SQLModel, table=True):
    """Last FIFO position handed out. Locked while a new position is allocated."""
    __tablename__ = "sell_queue_counters"

    name: str = Field(primary_key=True)
    last_position: int = 0
