"""
Settlement Engine：結算獎金池

流程：
1. 驗證 caller 是 Host、Session 尚未結束
2. 依 total_prize_pool 建立結算計畫（services.settlement_service）
3. 把計畫寫成 Payout（PENDING）
4. 依 seq 順序從獎金池轉出每一筆 Payout，標記 PAID
5. 全部 PAID 之後才把 Session 轉成 ENDED

原子性：
- Ledger.atomic == True（DatabaseLedger）：
  步驟 1-5 在同一個 transaction，任何一步失敗全部 rollback，
  Session 留在原狀態、獎金池不動
- Ledger.atomic == False（外部帳本）：兩階段
  Phase 1 先 commit 整份計畫（settlement_started = True，不再接受加入）
  Phase 2 每轉出一筆就 commit 一次；中途失敗時已付的保持 PAID，
  之後由 resume_settlement 從第一筆 PENDING 繼續，不會重複付款
"""
from datetime import datetime, timezone
from typing import List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from models import EventLog, GameSession, Payout, PayoutKind, PayoutStatus, SessionState
from core.state_machine import SessionStateMachine
from core.session_manager import SessionManager
from core.locks import with_session_lock
from core.exceptions import (
    InvalidStateTransition,
    SessionNotFound,
    SettlementInProgress,
    SettlementNotStarted,
)
from services.ledger import DatabaseLedger, Ledger
from services.identity_service import require_host
from services.settlement_service import SettlementPlan, WinnerShare, build_settlement_plan
from database import get_settings, transactional

logger = logging.getLogger(__name__)


class SettlementEngine:
    """獎金池結算"""

    # ============ 公開操作 ============

    @staticmethod
    def settle(
        db: Session,
        session_id: str,
        caller: str,
        winners: Sequence[WinnerShare],
        ledger: Optional[Ledger] = None,
    ) -> List[Payout]:
        """
        結算 Session

        參數：
            db: SQLAlchemy Session
            session_id: GameSession ID
            caller: 呼叫者身分（必須是 Host）
            winners: [(participant, share), ...]，share 是可分配獎金的百分比
            ledger: 轉帳原語，預設 DatabaseLedger

        返回：
            依 seq 排序的 Payout（全部 PAID）

        異常：
            SessionNotFound, UnauthorizedHost, GameAlreadyEnded,
            SettlementInProgress, InvalidWinnerShares, TransferError
        """
        ledger = ledger or DatabaseLedger(db)

        if ledger.atomic:
            return SettlementEngine._settle_atomic(db, session_id, caller, winners, ledger)

        SettlementEngine._prepare_settlement(db, session_id, caller, winners)
        return SettlementEngine.resume_settlement(db, session_id, caller, ledger)

    @staticmethod
    def resume_settlement(
        db: Session,
        session_id: str,
        caller: str,
        ledger: Optional[Ledger] = None,
    ) -> List[Payout]:
        """
        繼續執行已建立但尚未完成的結算計畫

        用途：
            兩階段結算中途轉帳失敗後，補足條件再呼叫一次

        異常：
            SessionNotFound, UnauthorizedHost, GameAlreadyEnded,
            SettlementNotStarted, TransferError
        """
        ledger = ledger or DatabaseLedger(db)

        pending_ids = SettlementEngine._pending_payout_ids(db, session_id, caller)
        for payout_id in pending_ids:
            SettlementEngine._execute_payout(db, session_id, payout_id, ledger)

        SettlementEngine._finalize(db, session_id)
        return SettlementEngine.list_payouts(db, session_id)

    @staticmethod
    def preview_settlement(
        db: Session,
        session_id: str,
        winners: Sequence[WinnerShare],
    ) -> SettlementPlan:
        """
        試算結算結果，不修改任何資料

        異常：
            SessionNotFound, GameAlreadyEnded, InvalidWinnerShares
        """
        game = SessionManager.get_session_by_id(db, session_id)
        SessionStateMachine.require_not_ended(game)
        return SettlementEngine._build_plan(db, game, winners)

    @staticmethod
    def list_payouts(db: Session, session_id: str) -> List[Payout]:
        return db.query(Payout).filter(
            Payout.session_id == session_id
        ).order_by(Payout.seq).all()

    # ============ 內部步驟 ============

    @staticmethod
    @transactional
    def _settle_atomic(
        db: Session,
        session_id: str,
        caller: str,
        winners: Sequence[WinnerShare],
        ledger: Ledger,
    ) -> List[Payout]:
        game = SettlementEngine._lock_for_settlement(db, session_id, caller)
        if game.settlement_started:
            raise SettlementInProgress(
                f"Session {game.id} already has a settlement plan, resume it instead"
            )

        payouts = SettlementEngine._persist_plan(db, game, winners)
        for payout in payouts:
            SettlementEngine._pay(db, game, payout, ledger)

        SettlementEngine._mark_ended(db, game)
        return payouts

    @staticmethod
    @transactional
    def _prepare_settlement(
        db: Session,
        session_id: str,
        caller: str,
        winners: Sequence[WinnerShare],
    ) -> List[Payout]:
        """Phase 1：驗證並 commit 結算計畫"""
        game = SettlementEngine._lock_for_settlement(db, session_id, caller)
        if game.settlement_started:
            raise SettlementInProgress(
                f"Session {game.id} already has a settlement plan, resume it instead"
            )
        return SettlementEngine._persist_plan(db, game, winners)

    @staticmethod
    @transactional
    def _pending_payout_ids(db: Session, session_id: str, caller: str) -> List[int]:
        game = SettlementEngine._lock_for_settlement(db, session_id, caller)
        if not game.settlement_started:
            raise SettlementNotStarted(f"Session {game.id} has no settlement plan to resume")

        rows = db.query(Payout.id).filter(
            Payout.session_id == game.id,
            Payout.status == PayoutStatus.PENDING
        ).order_by(Payout.seq).all()
        return [row.id for row in rows]

    @staticmethod
    @transactional
    def _execute_payout(db: Session, session_id: str, payout_id: int, ledger: Ledger) -> Payout:
        """Phase 2 的一步：轉出一筆 Payout 並 commit"""
        game = with_session_lock(session_id, db).first()
        if not game:
            raise SessionNotFound(session_id)

        payout = db.query(Payout).filter(Payout.id == payout_id).one()
        if payout.status == PayoutStatus.PAID:
            # 另一個 resume 已經付過
            return payout

        SettlementEngine._pay(db, game, payout, ledger)
        return payout

    @staticmethod
    @transactional
    def _finalize(db: Session, session_id: str) -> GameSession:
        game = with_session_lock(session_id, db).first()
        if not game:
            raise SessionNotFound(session_id)
        if game.state == SessionState.ENDED:
            return game

        unpaid = db.query(Payout).filter(
            Payout.session_id == game.id,
            Payout.status == PayoutStatus.PENDING
        ).count()
        if unpaid:
            raise InvalidStateTransition(
                f"Session {game.id} still has {unpaid} pending payouts"
            )

        return SettlementEngine._mark_ended(db, game)

    @staticmethod
    def _lock_for_settlement(db: Session, session_id: str, caller: str) -> GameSession:
        game = with_session_lock(session_id, db).first()
        if not game:
            raise SessionNotFound(session_id)

        require_host(game.host, caller)
        SessionStateMachine.require_not_ended(game)
        return game

    @staticmethod
    def _build_plan(db: Session, game: GameSession, winners: Sequence[WinnerShare]) -> SettlementPlan:
        settings = get_settings()
        participants = {p.participant for p in SessionManager.list_players(db, game.id)}

        return build_settlement_plan(
            game.total_prize_pool,
            winners,
            host_fee_percent=settings.host_fee_percent,
            platform_fee_percent=settings.platform_fee_percent,
            denomination=settings.share_denomination,
            participants=participants,
        )

    @staticmethod
    def _persist_plan(db: Session, game: GameSession, winners: Sequence[WinnerShare]) -> List[Payout]:
        """
        把結算計畫寫成 Payout（PENDING），並凍結 Session 不再接受加入

        收款帳戶：
        - WINNER：玩家加入時付款的帳戶
        - HOST_FEE：Session 的 host_payout_account_id
        - PLATFORM_FEE / DUST：平台帳戶
        """
        try:
            plan = SettlementEngine._build_plan(db, game, winners)
        except Exception:
            logger.warning(f"Rejected settlement for session {game.id}: winners={list(winners)}")
            raise

        funding_accounts = {
            p.participant: p.funding_account_id
            for p in SessionManager.list_players(db, game.id)
        }
        platform_account_id = DatabaseLedger(db).get_or_open_account(
            get_settings().platform_account_owner
        ).id

        destinations = {
            PayoutKind.HOST_FEE: game.host_payout_account_id,
            PayoutKind.PLATFORM_FEE: platform_account_id,
            PayoutKind.DUST: platform_account_id,
        }

        payouts = []
        for seq, planned in enumerate(plan.payouts):
            if planned.kind == PayoutKind.WINNER:
                to_account_id = funding_accounts[planned.participant]
            else:
                to_account_id = destinations[planned.kind]

            payout = Payout(
                session_id=game.id,
                seq=seq,
                kind=planned.kind,
                participant=planned.participant,
                to_account_id=to_account_id,
                amount=planned.amount,
                status=PayoutStatus.PENDING,
            )
            db.add(payout)
            payouts.append(payout)

        game.settlement_started = True

        db.add(EventLog(
            session_id=game.id,
            event_type="SETTLEMENT_PLANNED",
            data={
                "total_prize_pool": plan.total_prize_pool,
                "host_fee": plan.host_fee,
                "platform_fee": plan.platform_fee,
                "distributable": plan.distributable,
                "dust": plan.dust,
                "winners": [[p, s] for p, s in winners],
            }
        ))
        db.flush()

        logger.info(
            f"Planned settlement for session {game.id}: pool={plan.total_prize_pool} "
            f"host_fee={plan.host_fee} platform_fee={plan.platform_fee} dust={plan.dust}"
        )
        return payouts

    @staticmethod
    def _pay(db: Session, game: GameSession, payout: Payout, ledger: Ledger) -> None:
        # 0 元的 Payout 只記錄，不轉帳
        if payout.amount > 0:
            ledger.transfer(
                game.pool_account_id,
                payout.to_account_id,
                payout.amount,
                release_custody=True
            )

        payout.status = PayoutStatus.PAID
        payout.paid_at = datetime.now(timezone.utc)

        db.add(EventLog(
            session_id=game.id,
            event_type="PAYOUT_SENT",
            data={
                "seq": payout.seq,
                "kind": payout.kind.value,
                "participant": payout.participant,
                "amount": payout.amount
            }
        ))
        db.flush()

    @staticmethod
    def _mark_ended(db: Session, game: GameSession) -> GameSession:
        game = SessionStateMachine.transition(game.id, SessionState.ENDED, db)

        db.add(EventLog(
            session_id=game.id,
            event_type="SESSION_SETTLED",
            data={"total_prize_pool": game.total_prize_pool}
        ))

        logger.info(f"Session {game.id} settled (pool={game.total_prize_pool})")
        return game
