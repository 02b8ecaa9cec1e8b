"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理

分類：
- StateError：生命週期狀態不符（重試沒有意義）
- CapacityError：房間已滿
- AuthorizationError：呼叫者不是 Host
- ValidationError：請求內容不合法
- TransferError：轉帳層錯誤（例如餘額不足，補足後重試是合理的）
"""


class PrizePoolException(Exception):
    """所有遊戲異常的基類"""
    retryable = False


# ============ Session 相關異常 ============

class SessionNotFound(PrizePoolException):
    """Session 不存在"""
    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


# ============ 狀態異常 ============

class StateError(PrizePoolException):
    """Session 的狀態不允許這個操作"""
    pass


class GameNotInLobby(StateError):
    """Session 已不在 Lobby（已開始、結算中或已結束），不接受新玩家"""
    pass


class GameAlreadyEnded(StateError):
    """Session 已經結束，不允許任何狀態轉換"""
    def __init__(self, session_id):
        self.session_id = session_id
        super().__init__(f"Session {session_id} has already ended")


class InvalidStateTransition(StateError):
    """非法的狀態轉換"""
    pass


class SettlementInProgress(StateError):
    """結算計畫已建立但尚未完成，請改用 resume_settlement"""
    pass


class SettlementNotStarted(StateError):
    """沒有可以繼續的結算計畫"""
    pass


# ============ 容量異常 ============

class CapacityError(PrizePoolException):
    pass


class GameFull(CapacityError):
    """玩家數量已達上限"""
    def __init__(self, session_id, max_players):
        self.session_id = session_id
        self.max_players = max_players
        super().__init__(f"Session {session_id} is full ({max_players} players)")


# ============ 權限異常 ============

class AuthorizationError(PrizePoolException):
    pass


class UnauthorizedHost(AuthorizationError):
    """呼叫者不是這個 Session 的 Host"""
    def __init__(self, caller):
        self.caller = caller
        super().__init__(f"{caller} is not the host of this session")


# ============ 驗證異常 ============

class ValidationError(PrizePoolException):
    pass


class InvalidSessionParameters(ValidationError):
    """入場費或人數上限不合法"""
    pass


class InvalidWinnerShares(ValidationError):
    """得獎者份額不合法（總和為 0、超過分母、負數、重複或不是玩家）"""
    pass


class PlayerAlreadyJoined(ValidationError):
    """玩家已經加入過這個 Session"""
    def __init__(self, participant):
        self.participant = participant
        super().__init__(f"{participant} has already joined this session")


# ============ 轉帳異常 ============

class TransferError(PrizePoolException):
    """轉帳層錯誤，原樣拋給呼叫者"""
    retryable = True


class AccountNotFound(TransferError):
    def __init__(self, account_id):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class InsufficientFunds(TransferError):
    def __init__(self, account_id, balance, amount):
        self.account_id = account_id
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"Account {account_id} has {balance}, cannot transfer {amount}"
        )


class TransferNotAuthorized(TransferError):
    """轉出帳戶不屬於發起者"""
    pass


class InvalidTransferAmount(TransferError):
    pass
