"""
Session Manager：管理 GameSession 的完整生命週期（結算除外）

職責：
1. 建立 Session（含獎金池帳戶）
2. 玩家加入（入場費轉入獎金池 + 更新計數）
3. 開始遊戲（LOBBY -> IN_PROGRESS）
4. 查詢 Session 資訊

原則：
- 單一職責：只管 Session 與玩家，結算交給 SettlementEngine
- 消除特殊情況：所有狀態變更經過 StateMachine
- 先驗證再執行：所有檢查都通過才轉帳、才改計數
"""
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from models import EventLog, GameSession, SessionPlayer, SessionState
from core.state_machine import SessionStateMachine
from core.locks import with_session_lock
from core.exceptions import (
    GameFull,
    InvalidSessionParameters,
    InvalidStateTransition,
    PlayerAlreadyJoined,
    SessionNotFound,
)
from services.ledger import DatabaseLedger, Ledger
from services.identity_service import require_host
from services.naming_service import code_in_use, generate_session_code, pool_account_owner
from database import get_settings, transactional

logger = logging.getLogger(__name__)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class SessionManager:
    """GameSession 生命週期管理器"""

    @staticmethod
    @transactional
    def initialize_session(
        db: Session,
        host: str,
        entry_fee: int,
        max_players: int,
        host_payout_account_id: Optional[str] = None,
    ) -> GameSession:
        """
        建立新 Session

        流程：
        1. 驗證參數
        2. 生成唯一的 Session 代碼
        3. 開立獎金池帳戶（以及 Host 收款帳戶，如果沒有指定）
        4. 建立 GameSession（LOBBY, player_count=0, total_prize_pool=0）
        5. 記錄事件

        參數：
            db: SQLAlchemy Session
            host: Host 身分
            entry_fee: 入場費（正整數）
            max_players: 人數上限（正整數，不超過設定的上限）
            host_payout_account_id: Host 手續費的收款帳戶

        異常：
            InvalidSessionParameters: 參數不合法，或收款帳戶是獎金池
            AccountNotFound: 指定的收款帳戶不存在
        """
        settings = get_settings()

        # 1. 驗證參數
        if not host:
            raise InvalidSessionParameters("Host identity is required")
        if not _is_positive_int(entry_fee):
            raise InvalidSessionParameters(f"Entry fee must be a positive integer, got {entry_fee!r}")
        if not _is_positive_int(max_players):
            raise InvalidSessionParameters(f"Max players must be a positive integer, got {max_players!r}")
        if max_players > settings.max_players_limit:
            raise InvalidSessionParameters(
                f"Max players must be <= {settings.max_players_limit}, got {max_players}"
            )

        # 2. 生成唯一的 Session 代碼
        code = generate_session_code()
        while code_in_use(code, db):
            code = generate_session_code()
            logger.warning(f"Session code collision detected, regenerating: {code}")

        # 3. 開立帳戶
        ledger = DatabaseLedger(db)
        pool = ledger.open_account(pool_account_owner(code), custody=True)
        if host_payout_account_id is None:
            host_payout_account_id = ledger.get_or_open_account(host).id
        elif ledger.get_account(host_payout_account_id).is_custody:
            raise InvalidSessionParameters(
                f"Account {host_payout_account_id} is a custody pool and cannot receive the host fee"
            )

        # 4. 建立 Session
        game = GameSession(
            code=code,
            host=host,
            entry_fee=entry_fee,
            max_players=max_players,
            player_count=0,
            total_prize_pool=0,
            state=SessionState.LOBBY,
            pool_account_id=pool.id,
            host_payout_account_id=host_payout_account_id,
        )
        db.add(game)
        db.flush()  # 取得 game.id

        logger.info(
            f"Created session {game.id} with code {code} "
            f"(host={host}, entry_fee={entry_fee}, max_players={max_players})"
        )

        # 5. 記錄事件
        db.add(EventLog(
            session_id=game.id,
            event_type="SESSION_CREATED",
            data={"code": code, "entry_fee": entry_fee, "max_players": max_players}
        ))

        return game

    @staticmethod
    @transactional
    def join(
        db: Session,
        session_id: str,
        participant: str,
        funding_account_id: str,
        ledger: Optional[Ledger] = None,
    ) -> SessionPlayer:
        """
        玩家加入 Session

        前置條件：
        1. Session 必須存在
        2. state 必須是 LOBBY，且尚未開始結算
        3. player_count < max_players
        4. 玩家還沒加入過

        流程：
        1. 鎖定並驗證
        2. 從玩家帳戶轉 entry_fee 到獎金池
        3. 同一個鎖內更新 player_count / total_prize_pool
        4. 記錄事件

        異常：
            SessionNotFound, GameNotInLobby, GameFull, PlayerAlreadyJoined
            TransferError（原樣拋出，不重試）
            TransferNotAuthorized: 付款帳戶不屬於玩家，或是獎金池帳戶

        注意：
            轉帳失敗時 decorator 會 rollback，計數完全不變
        """
        ledger = ledger or DatabaseLedger(db)

        # 1. 取得並鎖定 Session
        game = with_session_lock(session_id, db).first()
        if not game:
            raise SessionNotFound(session_id)

        SessionStateMachine.require_lobby(game)

        if game.player_count >= game.max_players:
            raise GameFull(game.id, game.max_players)

        already_joined = db.query(SessionPlayer).filter(
            SessionPlayer.session_id == game.id,
            SessionPlayer.participant == participant
        ).first()
        if already_joined:
            raise PlayerAlreadyJoined(participant)

        # 2. 入場費轉入獎金池
        ledger.transfer(
            funding_account_id,
            game.pool_account_id,
            game.entry_fee,
            authority=participant
        )

        # 3. 更新計數
        game.player_count += 1
        game.total_prize_pool += game.entry_fee

        player = SessionPlayer(
            session_id=game.id,
            participant=participant,
            funding_account_id=funding_account_id
        )
        db.add(player)

        # 4. 記錄事件
        db.add(EventLog(
            session_id=game.id,
            event_type="PLAYER_JOINED",
            data={
                "participant": participant,
                "player_count": game.player_count,
                "total_prize_pool": game.total_prize_pool
            }
        ))

        logger.info(
            f"{participant} joined session {game.id} "
            f"({game.player_count}/{game.max_players}, pool={game.total_prize_pool})"
        )

        return player

    @staticmethod
    @transactional
    def start_game(db: Session, session_id: str, caller: str) -> GameSession:
        """
        開始遊戲（狀態轉換 LOBBY -> IN_PROGRESS）

        前置條件：
        1. caller 必須是 Host
        2. 至少一位玩家

        異常：
            SessionNotFound, UnauthorizedHost, GameAlreadyEnded, InvalidStateTransition
        """
        game = with_session_lock(session_id, db).first()
        if not game:
            raise SessionNotFound(session_id)

        require_host(game.host, caller)

        if game.player_count < 1:
            raise InvalidStateTransition(
                f"Need at least 1 player to start session {game.id}"
            )

        game = SessionStateMachine.transition(game.id, SessionState.IN_PROGRESS, db)

        db.add(EventLog(
            session_id=game.id,
            event_type="GAME_STARTED",
            data={"player_count": game.player_count}
        ))

        logger.info(f"Started session {game.id} with {game.player_count} players")
        return game

    @staticmethod
    def get_session_by_code(db: Session, code: str) -> GameSession:
        """
        透過 Session 代碼取得 GameSession

        異常：
            SessionNotFound
        """
        game = db.query(GameSession).filter(GameSession.code == code.upper()).first()
        if not game:
            raise SessionNotFound(f"with code {code}")
        return game

    @staticmethod
    def get_session_by_id(db: Session, session_id: str) -> GameSession:
        game = db.query(GameSession).filter(GameSession.id == session_id).first()
        if not game:
            raise SessionNotFound(session_id)
        return game

    @staticmethod
    def list_players(db: Session, session_id: str) -> List[SessionPlayer]:
        """依加入順序列出玩家"""
        return db.query(SessionPlayer).filter(
            SessionPlayer.session_id == session_id
        ).order_by(SessionPlayer.joined_at, SessionPlayer.id).all()
