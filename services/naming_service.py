"""
命名服務：生成 Session Code 與帳戶擁有者名稱

純計算邏輯，不涉及狀態轉換
"""
import random
import string

from sqlalchemy.orm import Session

from models import GameSession


def generate_session_code() -> str:
    """
    生成隨機的 6 位大寫字母 Session 代碼

    範例：ABCDEF, XYZABC

    注意：
    - 不檢查唯一性（由呼叫者透過 code_in_use 負責）
    - 26^6 = 308,915,776 種可能，碰撞機率極低
    """
    return ''.join(random.choices(string.ascii_uppercase, k=6))


def code_in_use(code: str, db: Session) -> bool:
    return db.query(GameSession).filter(GameSession.code == code).first() is not None


def pool_account_owner(code: str) -> str:
    """
    獎金池帳戶的擁有者名稱

    範例：pool_account_owner("ABCDEF") -> "pool:ABCDEF"

    用途：
        讓帳戶列表一眼就看得出哪個帳戶是哪場遊戲的獎金池
    """
    return f"pool:{code}"
