"""
並發控制工具

提供 Database-level 的鎖定機制，防止競態條件（Race Condition）

主要使用 PostgreSQL 的 SELECT ... FOR UPDATE 來實現悲觀鎖（Pessimistic Locking）
SQLite 會忽略 FOR UPDATE，但它本身一次只允許一個 writer
"""
from sqlalchemy.orm import Session, Query

from models import Account, GameSession


def with_session_lock(session_id: str, db: Session) -> Query:
    """
    鎖定一個 GameSession（行級鎖）

    使用場景：
    - 加入玩家時（player_count / total_prize_pool 必須在同一個鎖內更新）
    - 結算時（防止重複結算、防止結算途中有人加入）

    範例：
        game = with_session_lock(session_id, db).first()
        if not game:
            raise SessionNotFound(session_id)
        game.player_count += 1
        db.commit()

    參數：
        session_id: GameSession 的 ID
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
    """
    return db.query(GameSession).filter(
        GameSession.id == session_id
    ).with_for_update(nowait=False)


def lock_accounts(account_ids: list[str], db: Session) -> Query:
    """
    鎖定多個 Account（用於轉帳）

    依 id 排序上鎖，兩筆方向相反的轉帳不會互相 deadlock

    參數：
        account_ids: Account ID 列表
        db: SQLAlchemy Session

    返回：
        Query object（呼叫 .all() 取得所有結果）
    """
    return db.query(Account).filter(
        Account.id.in_(account_ids)
    ).order_by(Account.id).with_for_update(nowait=False)
