"""
Session API Endpoints

職責：
1. Host 建立 Session
2. 玩家加入（付入場費）
3. Host 開始遊戲、結算、繼續結算
4. 查詢 Session 與 Payout

錯誤對應：
- SessionNotFound → 404
- StateError / CapacityError → 409（重試沒有意義）
- ValidationError → 400
- AuthorizationError → 403
- TransferError → 402（例如餘額不足，補足後可重試）
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import GameSession
from schemas import (
    HostAction,
    PayoutResponse,
    PlannedPayoutResponse,
    PlayerJoin,
    PlayerResponse,
    PreviewRequest,
    SessionCreate,
    SessionResponse,
    SettleRequest,
    SettlementPreviewResponse,
)
from core.session_manager import SessionManager
from core.settlement_engine import SettlementEngine
from core.exceptions import (
    AuthorizationError,
    CapacityError,
    SessionNotFound,
    StateError,
    TransferError,
    ValidationError,
)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])
logger = logging.getLogger(__name__)


def _session_response(db: Session, game: GameSession) -> SessionResponse:
    players = SessionManager.list_players(db, game.id)
    return SessionResponse(
        session_id=game.id,
        code=game.code,
        host=game.host,
        entry_fee=game.entry_fee,
        max_players=game.max_players,
        player_count=game.player_count,
        state=game.state,
        total_prize_pool=game.total_prize_pool,
        settlement_started=game.settlement_started,
        pool_account_id=game.pool_account_id,
        host_payout_account_id=game.host_payout_account_id,
        players=[PlayerResponse.model_validate(p) for p in players],
    )


@router.post("", response_model=SessionResponse, status_code=201)
def create_session(data: SessionCreate, db: Session = Depends(get_db)):
    """
    建立 Session（Host endpoint）

    返回：
        Session 狀態（LOBBY, player_count=0, total_prize_pool=0）
    """
    try:
        game = SessionManager.initialize_session(
            db,
            data.host,
            data.entry_fee,
            data.max_players,
            data.host_payout_account_id
        )
        return _session_response(db, game)

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransferError as e:
        # 指定的 Host 收款帳戶不存在
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create session: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{code}", response_model=SessionResponse)
def get_session(code: str, db: Session = Depends(get_db)):
    try:
        game = SessionManager.get_session_by_code(db, code)
        return _session_response(db, game)

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except Exception as e:
        logger.error(f"Failed to get session: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{code}/join", response_model=PlayerResponse)
def join_session(code: str, data: PlayerJoin, db: Session = Depends(get_db)):
    """
    加入 Session（玩家 endpoint）

    前置條件：
    - Session 必須是 LOBBY 且未滿
    - funding_account_id 必須屬於 participant 且餘額 >= entry_fee

    流程：
    1. 透過代碼找到 Session
    2. 入場費轉入獎金池、更新計數（同一個 transaction）
    """
    try:
        game = SessionManager.get_session_by_code(db, code)
        player = SessionManager.join(db, game.id, data.participant, data.funding_account_id)
        return PlayerResponse.model_validate(player)

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except (StateError, CapacityError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransferError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to join session: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{code}/start", response_model=SessionResponse)
def start_session(code: str, data: HostAction, db: Session = Depends(get_db)):
    """開始遊戲（Host endpoint）"""
    try:
        game = SessionManager.get_session_by_code(db, code)
        game = SessionManager.start_game(db, game.id, data.caller)
        return _session_response(db, game)

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to start session: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{code}/settle", response_model=List[PayoutResponse])
def settle_session(code: str, data: SettleRequest, db: Session = Depends(get_db)):
    """
    結算 Session（Host endpoint）

    效果：
    - 扣除 Host / 平台手續費後，依 share 分配給得獎者
    - 零頭轉給平台，獎金池歸零
    - 狀態轉換 -> ENDED
    """
    try:
        game = SessionManager.get_session_by_code(db, code)
        payouts = SettlementEngine.settle(db, game.id, data.caller, data.winner_tuples())
        return [PayoutResponse.model_validate(p) for p in payouts]

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransferError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to settle session: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{code}/settle/preview", response_model=SettlementPreviewResponse)
def preview_settlement(code: str, data: PreviewRequest, db: Session = Depends(get_db)):
    """試算結算結果（不轉帳、不改狀態）"""
    try:
        game = SessionManager.get_session_by_code(db, code)
        plan = SettlementEngine.preview_settlement(db, game.id, data.winner_tuples())
        return SettlementPreviewResponse(
            total_prize_pool=plan.total_prize_pool,
            host_fee=plan.host_fee,
            platform_fee=plan.platform_fee,
            distributable=plan.distributable,
            dust=plan.dust,
            payouts=[
                PlannedPayoutResponse(kind=p.kind, participant=p.participant, amount=p.amount)
                for p in plan.payouts
            ]
        )

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except StateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to preview settlement: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{code}/settle/resume", response_model=List[PayoutResponse])
def resume_settlement(code: str, data: HostAction, db: Session = Depends(get_db)):
    """繼續未完成的結算（Host endpoint）"""
    try:
        game = SessionManager.get_session_by_code(db, code)
        payouts = SettlementEngine.resume_settlement(db, game.id, data.caller)
        return [PayoutResponse.model_validate(p) for p in payouts]

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TransferError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to resume settlement: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{code}/payouts", response_model=List[PayoutResponse])
def list_payouts(code: str, db: Session = Depends(get_db)):
    try:
        game = SessionManager.get_session_by_code(db, code)
        payouts = SettlementEngine.list_payouts(db, game.id)
        return [PayoutResponse.model_validate(p) for p in payouts]

    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")
    except Exception as e:
        logger.error(f"Failed to list payouts: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
