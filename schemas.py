"""
API Request / Response schemas（Pydantic）
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from database import get_settings
from models import PayoutKind, PayoutStatus, SessionState


# ============ Account ============

class AccountCreate(BaseModel):
    owner: str = Field(..., min_length=1, max_length=128)
    balance: int = Field(0, ge=0)


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner: str
    balance: int


# ============ Session ============

class SessionCreate(BaseModel):
    host: str = Field(..., min_length=1, max_length=128)
    entry_fee: int = Field(default_factory=lambda: get_settings().default_entry_fee, gt=0)
    max_players: int = Field(..., gt=0)
    host_payout_account_id: Optional[str] = None


class PlayerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    participant: str
    funding_account_id: str
    joined_at: Optional[datetime] = None


class SessionResponse(BaseModel):
    session_id: str
    code: str
    host: str
    entry_fee: int
    max_players: int
    player_count: int
    state: SessionState
    total_prize_pool: int
    settlement_started: bool
    pool_account_id: str
    host_payout_account_id: str
    players: List[PlayerResponse] = []


class PlayerJoin(BaseModel):
    participant: str = Field(..., min_length=1, max_length=128)
    funding_account_id: str


class HostAction(BaseModel):
    caller: str


# ============ Settlement ============

class WinnerEntry(BaseModel):
    participant: str
    share: int = Field(..., ge=0)


class SettleRequest(BaseModel):
    caller: str
    winners: List[WinnerEntry]

    def winner_tuples(self):
        return [(w.participant, w.share) for w in self.winners]


class PreviewRequest(BaseModel):
    winners: List[WinnerEntry]

    def winner_tuples(self):
        return [(w.participant, w.share) for w in self.winners]


class PayoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    seq: int
    kind: PayoutKind
    participant: Optional[str] = None
    to_account_id: str
    amount: int
    status: PayoutStatus


class PlannedPayoutResponse(BaseModel):
    kind: PayoutKind
    participant: Optional[str] = None
    amount: int


class SettlementPreviewResponse(BaseModel):
    total_prize_pool: int
    host_fee: int
    platform_fee: int
    distributable: int
    dust: int
    payouts: List[PlannedPayoutResponse]
