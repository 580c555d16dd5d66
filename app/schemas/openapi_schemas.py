from pydantic import BaseModel, ConfigDict, Field, UUID4
from uuid import UUID
from typing import List, Optional, Literal
from datetime import datetime
from enum import Enum

from app.models.sell_order import SellOrderStatus


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"

class FundingBand(str, Enum):
    FULLY_FUNDED = "fully_funded"
    PARTIALLY_FUNDED = "partially_funded"
    UNDERFUNDED = "underfunded"
    UNFUNDED = "unfunded"

class BuybackPower(str, Enum):
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"

class NewUser(BaseModel):
    name: str = Field(..., min_length=3)

class User(BaseModel):
    id: UUID4
    name: str
    role: UserRole
    api_key: str

class QueueStatus(BaseModel):
    has_active_order: bool
    as_of: datetime
    poll_interval_seconds: float
    order_id: Optional[UUID] = None
    currency: Optional[str] = None
    queue_position: Optional[int] = None
    quantity: Optional[int] = None
    filled_quantity: Optional[int] = None
    order_value: Optional[float] = None
    value_ahead: Optional[float] = None
    buyback_funds: Optional[float] = None
    estimated_wait_days: Optional[float] = None
    funding_band: Optional[FundingBand] = None

class SellPreview(BaseModel):
    currency: str
    next_position: int
    buyback_funds: float
    buyback_power: BuybackPower
    as_of: datetime

class SellOrderBody(BaseModel):
    quantity: int = Field(..., ge=1)
    requested_price: float = Field(..., gt=0)
    currency: Optional[str] = None

class ModifySellOrderBody(BaseModel):
    quantity: int = Field(..., ge=1)
    reason: Optional[str] = None

class SellOrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_uuid: UUID
    currency: str
    quantity: int
    remaining_quantity: int
    filled_quantity: int
    requested_price: float
    total_sell_value: float
    fifo_position: int
    status: SellOrderStatus
    cancel_reason: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None

class WalletReconciliation(BaseModel):
    wallet_id: UUID
    currency: str
    stored_balance: float
    calculated_balance: float
    difference: float
    needs_sync: bool
    version: int

class ReconciliationReport(BaseModel):
    user_id: UUID
    as_of: datetime
    wallets: List[WalletReconciliation]
    wallets_needing_sync: int
    total_drift: float

class SettledOrder(BaseModel):
    order_id: UUID
    user_id: UUID
    fifo_position: int
    shares_paid: int
    amount_paid: float
    status: SellOrderStatus

class BuybackBatchResult(BaseModel):
    currency: str
    processed_count: int
    total_paid: float
    fund_balance_before: float
    fund_balance_after: float
    settled: List[SettledOrder]

class BuybackProcessBody(BaseModel):
    currency: Optional[str] = None
    max_orders: Optional[int] = Field(None, ge=1)

class FundTopUpBody(BaseModel):
    currency: Optional[str] = None
    amount: float = Field(..., gt=0)

class FundBalance(BaseModel):
    currency: str
    balance: float

class Body_deposit_api_v1_admin_wallet_deposit_post(BaseModel):
    user_id: UUID
    currency: str
    amount: float = Field(..., gt=0)

class Body_withdraw_api_v1_admin_wallet_withdraw_post(BaseModel):
    user_id: UUID
    currency: str
    amount: float = Field(..., gt=0)

class Ok(BaseModel):
    success: Literal[True] = True
