"""
ORM 模型

- GameSession：一場遊戲的完整狀態（Session Record）
- Account：託管帳戶（玩家資金來源、獎金池、手續費收款帳戶）
- SessionPlayer：已加入的玩家，以及他們付款用的帳戶
- Payout：結算計畫中的每一筆出帳
- EventLog：所有重要事件的紀錄
"""
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, enum.Enum):
    LOBBY = "LOBBY"
    IN_PROGRESS = "IN_PROGRESS"
    ENDED = "ENDED"


class PayoutKind(str, enum.Enum):
    WINNER = "WINNER"
    HOST_FEE = "HOST_FEE"
    PLATFORM_FEE = "PLATFORM_FEE"
    DUST = "DUST"


class PayoutStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_account_balance_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    owner = Column(String(128), nullable=False, index=True)
    balance = Column(Integer, nullable=False, default=0)
    # 獎金池帳戶：只有結算可以轉出，不能當作玩家付款或 Host 收款帳戶
    is_custody = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_now)


class GameSession(Base):
    __tablename__ = "game_sessions"
    __table_args__ = (
        CheckConstraint("entry_fee > 0", name="ck_session_entry_fee_positive"),
        CheckConstraint("max_players > 0", name="ck_session_max_players_positive"),
        CheckConstraint(
            "player_count >= 0 AND player_count <= max_players",
            name="ck_session_player_count_range"
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String(6), unique=True, nullable=False, index=True)
    host = Column(String(128), nullable=False)
    entry_fee = Column(Integer, nullable=False)
    max_players = Column(Integer, nullable=False)
    player_count = Column(Integer, nullable=False, default=0)
    state = Column(Enum(SessionState), nullable=False, default=SessionState.LOBBY)
    total_prize_pool = Column(Integer, nullable=False, default=0)
    settlement_started = Column(Boolean, nullable=False, default=False)

    pool_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    host_payout_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), default=_now)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    players = relationship(
        "SessionPlayer",
        back_populates="session",
        order_by="SessionPlayer.joined_at"
    )
    payouts = relationship(
        "Payout",
        back_populates="session",
        order_by="Payout.seq"
    )


class SessionPlayer(Base):
    __tablename__ = "session_players"
    __table_args__ = (
        UniqueConstraint("session_id", "participant", name="uq_session_participant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("game_sessions.id"), nullable=False, index=True)
    participant = Column(String(128), nullable=False)
    funding_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    joined_at = Column(DateTime(timezone=True), default=_now)

    session = relationship("GameSession", back_populates="players")


class Payout(Base):
    __tablename__ = "payouts"
    __table_args__ = (
        UniqueConstraint("session_id", "seq", name="uq_payout_session_seq"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("game_sessions.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    kind = Column(Enum(PayoutKind), nullable=False)
    participant = Column(String(128), nullable=True)
    to_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(Enum(PayoutStatus), nullable=False, default=PayoutStatus.PENDING)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    session = relationship("GameSession", back_populates="payouts")


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("game_sessions.id"), nullable=False, index=True)
    event_type = Column(String(64), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now)
