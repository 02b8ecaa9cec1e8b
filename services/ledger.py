"""
帳本服務：託管帳戶與轉帳原語

核心邏輯只透過 Ledger 介面搬動資金：
- transfer(from, to, amount)：成功或拋出 TransferError，沒有中間狀態
- atomic：是否支援「多筆轉帳在同一個 transaction 內一起成功或一起失敗」

DatabaseLedger 把帳戶存在同一個資料庫裡，所以所有轉帳都跟著
呼叫者的 transaction 一起 commit / rollback（atomic = True）
"""
from typing import Optional, Protocol
import logging

from sqlalchemy.orm import Session

from models import Account
from core.locks import lock_accounts
from core.exceptions import (
    AccountNotFound,
    InsufficientFunds,
    InvalidTransferAmount,
    TransferNotAuthorized,
)

logger = logging.getLogger(__name__)


class Ledger(Protocol):
    atomic: bool

    def open_account(self, owner: str, balance: int = 0, custody: bool = False) -> Account: ...

    def balance_of(self, account_id: str) -> int: ...

    def transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: int,
        authority: Optional[str] = None,
        release_custody: bool = False,
    ) -> None: ...


class DatabaseLedger:
    """以資料表實作的託管帳本"""

    atomic = True

    def __init__(self, db: Session):
        self.db = db

    def open_account(self, owner: str, balance: int = 0, custody: bool = False) -> Account:
        """
        開立新帳戶

        custody=True 開的是獎金池帳戶，只有結算（release_custody=True）能轉出

        注意：
            只 flush 不 commit，由外層 transaction 處理
        """
        if balance < 0:
            raise InvalidTransferAmount(f"Opening balance must be >= 0, got {balance}")

        account = Account(owner=owner, balance=balance, is_custody=custody)
        self.db.add(account)
        self.db.flush()

        logger.info(f"Opened account {account.id} for {owner} (balance={balance})")
        return account

    def get_account(self, account_id: str) -> Account:
        account = self.db.query(Account).filter(Account.id == account_id).first()
        if not account:
            raise AccountNotFound(account_id)
        return account

    def get_or_open_account(self, owner: str) -> Account:
        """取得擁有者的第一個一般帳戶，沒有就開一個（平台與 Host 收款帳戶用）"""
        account = self.db.query(Account).filter(
            Account.owner == owner,
            Account.is_custody == False  # noqa: E712
        ).order_by(Account.created_at).first()
        if account:
            return account
        return self.open_account(owner)

    def balance_of(self, account_id: str) -> int:
        return self.get_account(account_id).balance

    def transfer(
        self,
        from_account_id: str,
        to_account_id: str,
        amount: int,
        authority: Optional[str] = None,
        release_custody: bool = False,
    ) -> None:
        """
        從一個帳戶轉帳到另一個帳戶

        參數：
            from_account_id: 轉出帳戶
            to_account_id: 轉入帳戶
            amount: 正整數金額
            authority: 發起者身分；有值時轉出帳戶必須屬於他
            release_custody: 允許從獎金池帳戶轉出（只有 SettlementEngine 會傳 True）

        異常：
            InvalidTransferAmount: 金額不是正整數，或轉出轉入相同
            AccountNotFound: 任一帳戶不存在
            TransferNotAuthorized: 轉出帳戶不屬於 authority，或未經結算從獎金池轉出
            InsufficientFunds: 餘額不足

        注意：
            先驗證全部條件才動餘額，失敗時兩個帳戶都不變
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidTransferAmount(f"Transfer amount must be a positive integer, got {amount!r}")
        if from_account_id == to_account_id:
            raise InvalidTransferAmount("Cannot transfer to the same account")

        accounts = {
            account.id: account
            for account in lock_accounts([from_account_id, to_account_id], self.db).all()
        }
        source = accounts.get(from_account_id)
        target = accounts.get(to_account_id)
        if source is None:
            raise AccountNotFound(from_account_id)
        if target is None:
            raise AccountNotFound(to_account_id)

        if source.is_custody and not release_custody:
            raise TransferNotAuthorized(
                f"Account {from_account_id} is a custody pool and can only be drained by settlement"
            )

        if authority is not None and source.owner != authority:
            raise TransferNotAuthorized(
                f"Account {from_account_id} does not belong to {authority}"
            )

        if source.balance < amount:
            raise InsufficientFunds(from_account_id, source.balance, amount)

        source.balance -= amount
        target.balance += amount
        self.db.flush()

        logger.info(f"Transferred {amount} from {from_account_id} to {to_account_id}")
