"""
結算計算服務：手續費與獎金分配

純計算邏輯，不碰資料庫也不轉帳（由 SettlementEngine 負責）

分配規則（以獎金池 T 為例）：
┌──────────────┬──────────────────────────────────────────┐
│ Host 手續費   │ floor(T * 4 / 100)                        │
│ 平台手續費    │ floor(T * 1 / 100)                        │
│ 可分配獎金    │ T - Host 手續費 - 平台手續費                │
│ 每位得獎者    │ floor(可分配獎金 * share / 100)             │
│ 零頭（dust）  │ 可分配獎金 - 所有得獎者獎金 → 平台帳戶       │
└──────────────┴──────────────────────────────────────────┘

手續費一律向下取整，取整的餘數留在可分配獎金裡（玩家吃到零頭，不是平台）
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from models import PayoutKind
from core.exceptions import InvalidWinnerShares

WinnerShare = Tuple[str, int]


@dataclass
class PlannedPayout:
    kind: PayoutKind
    amount: int
    participant: Optional[str] = None


@dataclass
class SettlementPlan:
    total_prize_pool: int
    host_fee: int
    platform_fee: int
    distributable: int
    dust: int
    payouts: List[PlannedPayout] = field(default_factory=list)

    @property
    def total_paid_out(self) -> int:
        return sum(p.amount for p in self.payouts)


def calculate_fees(
    total_prize_pool: int,
    host_fee_percent: int = 4,
    platform_fee_percent: int = 1,
) -> Tuple[int, int, int]:
    """
    計算手續費

    返回：
        (host_fee, platform_fee, distributable)

    範例：
        calculate_fees(200) -> (8, 2, 190)
        calculate_fees(250) -> (10, 2, 238)   # 平台 2.5 向下取整，0.5 留給玩家
    """
    host_fee = total_prize_pool * host_fee_percent // 100
    platform_fee = total_prize_pool * platform_fee_percent // 100
    distributable = total_prize_pool - host_fee - platform_fee
    return host_fee, platform_fee, distributable


def validate_winner_shares(
    winners: Sequence[WinnerShare],
    denomination: int = 100,
    participants: Optional[set] = None,
) -> None:
    """
    驗證得獎者列表

    規則：
    - 每個 share 必須是非負整數
    - share 總和必須 > 0 且 <= denomination
    - 同一位得獎者不能出現兩次
    - 有提供 participants 時，得獎者必須是這場遊戲的玩家

    異常：
        InvalidWinnerShares
    """
    if not winners:
        raise InvalidWinnerShares("Winner list is empty")

    seen = set()
    total = 0
    for participant, share in winners:
        if isinstance(share, bool) or not isinstance(share, int) or share < 0:
            raise InvalidWinnerShares(
                f"Share for {participant} must be a non-negative integer, got {share!r}"
            )
        if participant in seen:
            raise InvalidWinnerShares(f"{participant} is listed more than once")
        if participants is not None and participant not in participants:
            raise InvalidWinnerShares(f"{participant} did not join this session")
        seen.add(participant)
        total += share

    if total == 0:
        raise InvalidWinnerShares("Winner shares sum to zero")
    if total > denomination:
        raise InvalidWinnerShares(
            f"Winner shares sum to {total}, exceeding denomination {denomination}"
        )


def calculate_winner_payouts(
    distributable: int,
    winners: Sequence[WinnerShare],
    denomination: int = 100,
) -> List[Tuple[str, int]]:
    """
    依照列表順序計算每位得獎者的獎金（向下取整）

    範例：
        calculate_winner_payouts(190, [("A", 50), ("B", 50)]) -> [("A", 95), ("B", 95)]
        calculate_winner_payouts(190, [("A", 33), ("B", 33), ("C", 34)])
            -> [("A", 62), ("B", 62), ("C", 64)]   # 零頭 2
    """
    return [
        (participant, distributable * share // denomination)
        for participant, share in winners
    ]


def build_settlement_plan(
    total_prize_pool: int,
    winners: Sequence[WinnerShare],
    host_fee_percent: int = 4,
    platform_fee_percent: int = 1,
    denomination: int = 100,
    participants: Optional[set] = None,
) -> SettlementPlan:
    """
    建立完整的結算計畫

    出帳順序：得獎者（依列表順序）→ Host 手續費 → 平台手續費 → 零頭

    保證：
        計畫的出帳總額 == total_prize_pool（獎金池會被清空）

    沒有玩家的 Session（獎金池為 0）只能用空的得獎者列表結算，計畫沒有任何出帳
    """
    if total_prize_pool == 0 and not winners:
        return SettlementPlan(
            total_prize_pool=0,
            host_fee=0,
            platform_fee=0,
            distributable=0,
            dust=0,
            payouts=[],
        )

    validate_winner_shares(winners, denomination, participants)

    host_fee, platform_fee, distributable = calculate_fees(
        total_prize_pool, host_fee_percent, platform_fee_percent
    )

    payouts = [
        PlannedPayout(kind=PayoutKind.WINNER, amount=amount, participant=participant)
        for participant, amount in calculate_winner_payouts(distributable, winners, denomination)
    ]
    dust = distributable - sum(p.amount for p in payouts)

    payouts.append(PlannedPayout(kind=PayoutKind.HOST_FEE, amount=host_fee))
    payouts.append(PlannedPayout(kind=PayoutKind.PLATFORM_FEE, amount=platform_fee))
    payouts.append(PlannedPayout(kind=PayoutKind.DUST, amount=dust))

    return SettlementPlan(
        total_prize_pool=total_prize_pool,
        host_fee=host_fee,
        platform_fee=platform_fee,
        distributable=distributable,
        dust=dust,
        payouts=payouts,
    )
