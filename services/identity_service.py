"""
身分驗證服務

簽章驗證由外部負責；到了這一層，caller 已經是驗證過的身分字串，
這裡只判斷它是不是預期的那個人
"""
from core.exceptions import UnauthorizedHost


def verify_caller(expected: str, caller: str) -> bool:
    return bool(caller) and caller == expected


def require_host(host: str, caller: str) -> None:
    """
    異常：
        UnauthorizedHost: caller 不是 Host
    """
    if not verify_caller(host, caller):
        raise UnauthorizedHost(caller)
