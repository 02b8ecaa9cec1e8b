"""
Tests for the pure fee / payout computation.
"""
import pytest

from models import PayoutKind
from core.exceptions import InvalidWinnerShares
from services.settlement_service import (
    build_settlement_plan,
    calculate_fees,
    calculate_winner_payouts,
    validate_winner_shares,
)


class TestCalculateFees:

    def test_two_hundred_pool(self):
        assert calculate_fees(200) == (8, 2, 190)

    def test_fees_floor_and_players_keep_remainder(self):
        # 4% of 250 = 10, 1% of 250 = 2.5 -> 2; the 0.5 stays distributable
        assert calculate_fees(250) == (10, 2, 238)

    def test_small_pool_has_no_fees(self):
        assert calculate_fees(10) == (0, 0, 10)

    def test_empty_pool(self):
        assert calculate_fees(0) == (0, 0, 0)

    def test_custom_percentages(self):
        assert calculate_fees(1000, host_fee_percent=10, platform_fee_percent=5) == (100, 50, 850)


class TestValidateWinnerShares:

    def test_single_full_share_is_valid(self):
        validate_winner_shares([("alice", 100)])

    def test_partial_sum_is_valid(self):
        validate_winner_shares([("alice", 30), ("bob", 0)])

    @pytest.mark.parametrize("winners", [
        [],
        [("alice", 0)],
        [("alice", 0), ("bob", 0)],
    ])
    def test_zero_total_rejected(self, winners):
        with pytest.raises(InvalidWinnerShares):
            validate_winner_shares(winners)

    def test_exceeding_denomination_rejected(self):
        with pytest.raises(InvalidWinnerShares, match="exceeding"):
            validate_winner_shares([("alice", 60), ("bob", 41)])

    @pytest.mark.parametrize("share", [-1, 1.5, "50", True])
    def test_non_integer_or_negative_share_rejected(self, share):
        with pytest.raises(InvalidWinnerShares):
            validate_winner_shares([("alice", share)])

    def test_duplicate_winner_rejected(self):
        with pytest.raises(InvalidWinnerShares, match="more than once"):
            validate_winner_shares([("alice", 50), ("alice", 50)])

    def test_unknown_participant_rejected(self):
        with pytest.raises(InvalidWinnerShares, match="did not join"):
            validate_winner_shares([("mallory", 100)], participants={"alice", "bob"})


class TestBuildSettlementPlan:

    def test_single_winner_takes_distributable(self):
        plan = build_settlement_plan(200, [("alice", 100)])

        assert plan.host_fee == 8
        assert plan.platform_fee == 2
        assert plan.distributable == 190
        assert plan.dust == 0
        assert [(p.kind, p.participant, p.amount) for p in plan.payouts] == [
            (PayoutKind.WINNER, "alice", 190),
            (PayoutKind.HOST_FEE, None, 8),
            (PayoutKind.PLATFORM_FEE, None, 2),
            (PayoutKind.DUST, None, 0),
        ]

    def test_rounding_dust_is_accounted(self):
        plan = build_settlement_plan(200, [("a", 33), ("b", 33), ("c", 34)])

        assert calculate_winner_payouts(190, [("a", 33), ("b", 33), ("c", 34)]) == [
            ("a", 62), ("b", 62), ("c", 64)
        ]
        assert plan.dust == 2
        assert plan.total_paid_out == 200

    def test_unallocated_share_becomes_dust(self):
        plan = build_settlement_plan(200, [("alice", 50)])

        assert plan.payouts[0].amount == 95
        assert plan.dust == 95
        assert plan.total_paid_out == 200

    def test_winner_order_is_preserved(self):
        plan = build_settlement_plan(1000, [("bob", 70), ("alice", 30)])
        winners = [p.participant for p in plan.payouts if p.kind == PayoutKind.WINNER]
        assert winners == ["bob", "alice"]

    def test_empty_pool_without_winners_has_no_payouts(self):
        plan = build_settlement_plan(0, [], participants=set())

        assert plan.payouts == []
        assert plan.total_paid_out == 0

    def test_empty_winner_list_rejected_when_pool_has_funds(self):
        with pytest.raises(InvalidWinnerShares):
            build_settlement_plan(200, [], participants={"alice", "bob"})
