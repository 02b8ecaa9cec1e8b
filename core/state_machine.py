"""
狀態機：集中管理 GameSession 的所有狀態轉換

          join（自我迴圈，受人數上限限制）
            ┌──┐
            ▼  │
         ┌───────┐  start_game  ┌─────────────┐
         │ LOBBY │ ───────────▶ │ IN_PROGRESS │
         └───────┘              └─────────────┘
             │ settle                 │ settle
             ▼                        ▼
         ┌─────────────────────────────────┐
         │              ENDED              │  終止狀態，不能離開
         └─────────────────────────────────┘

所有狀態變更都必須經過這裡，不允許在其他地方直接改 state
"""
from datetime import datetime, timezone
import logging

from sqlalchemy.orm import Session

from models import EventLog, GameSession, SessionState
from core.locks import with_session_lock
from core.exceptions import (
    GameAlreadyEnded,
    GameNotInLobby,
    InvalidStateTransition,
    SessionNotFound,
)

logger = logging.getLogger(__name__)


class SessionStateMachine:
    """GameSession 狀態機"""

    TRANSITIONS = {
        SessionState.LOBBY: {SessionState.IN_PROGRESS, SessionState.ENDED},
        SessionState.IN_PROGRESS: {SessionState.ENDED},
        SessionState.ENDED: set(),
    }

    @classmethod
    def can_transition(cls, current: SessionState, target: SessionState) -> bool:
        return target in cls.TRANSITIONS[current]

    @staticmethod
    def require_lobby(game: GameSession) -> None:
        """
        加入玩家的前置條件：state == LOBBY 且尚未開始結算

        異常：
            GameNotInLobby
        """
        if game.state != SessionState.LOBBY or game.settlement_started:
            raise GameNotInLobby(
                f"Session {game.id} is not accepting players (state: {game.state.value})"
            )

    @staticmethod
    def require_not_ended(game: GameSession) -> None:
        if game.state == SessionState.ENDED:
            raise GameAlreadyEnded(game.id)

    @classmethod
    def validate(cls, game: GameSession, target: SessionState) -> None:
        """
        檢查轉換是否合法（只檢查，不修改）

        異常：
            GameAlreadyEnded: 目前已是 ENDED
            InvalidStateTransition: 其他不允許的轉換
        """
        cls.require_not_ended(game)
        if not cls.can_transition(game.state, target):
            raise InvalidStateTransition(
                f"Cannot transition session {game.id} from {game.state.value} to {target.value}"
            )

    @classmethod
    def transition(cls, session_id: str, target: SessionState, db: Session) -> GameSession:
        """
        轉換 Session 狀態並記錄 SESSION_STATE_CHANGED 事件

        參數：
            session_id: GameSession ID
            target: 目標狀態
            db: SQLAlchemy Session

        返回：
            更新後的 GameSession

        異常：
            SessionNotFound, GameAlreadyEnded, InvalidStateTransition

        注意：
            只 flush 不 commit，呼叫者必須在 transaction 內使用
        """
        game = with_session_lock(session_id, db).first()
        if not game:
            raise SessionNotFound(session_id)

        cls.validate(game, target)

        previous = game.state
        game.state = target
        if target == SessionState.ENDED:
            game.ended_at = datetime.now(timezone.utc)

        db.add(EventLog(
            session_id=game.id,
            event_type="SESSION_STATE_CHANGED",
            data={"from": previous.value, "to": target.value}
        ))
        db.flush()

        logger.info(f"Session {game.id} state changed: {previous.value} -> {target.value}")
        return game
