from __future__ import annotations

import unittest

from prizepool.db.engine import get_sessionmaker, make_engine
from prizepool.draw import DrawClock
from prizepool.errors import (
    DrawNotFoundError,
    DrawProviderError,
    InvalidDistributionParametersError,
    InvalidPickError,
    PickAlreadyClaimedError,
    PicksAlreadyGeneratedError,
    PicksNotGeneratedError,
    PrizeDistributionNotFoundError,
    YieldSourceError,
)
from prizepool.ledger import TimeWeightedLedger
from prizepool.models import Base, PickClaim
from prizepool.prizes import (
    ClaimResolver,
    PickAllocator,
    PickLedger,
    PrizeDistributionBuilder,
    user_number,
)
from prizepool.prizes.builder import smallest_cardinality
from prizepool.settings import PRIZE_DISTRIBUTION_TIME_OFFSET_MS, PoolSettings

ALICE = "alice.testnet"
BOB = "bob.testnet"
TOKEN_ID = "usdt.fakes.testnet"
PRIZE = 1_000_000


class CountingProvider:
    """Draw provider wrapper that counts fetches."""

    def __init__(self, clock: DrawClock):
        self.clock = clock
        self.calls = 0

    def get_draw(self, draw_id):
        self.calls += 1
        return self.clock.get_draw(draw_id)


class FakeYieldSource:
    def __init__(self, failures: int = 0):
        self.failures = failures
        self.error: Exception = YieldSourceError("venue rejected the payout")
        self.claims: list[dict] = []

    def claim(self, account_id, token_id, amount, draw_id, pick):
        if self.failures:
            self.failures -= 1
            raise self.error
        self.claims.append(
            {
                "account_id": account_id,
                "token_id": token_id,
                "amount": amount,
                "draw_id": draw_id,
                "pick": pick,
            }
        )


class PoolScenarioTestCase(unittest.TestCase):
    """Alice holds 300 and Bob 100 throughout draw 1, which spans ``[0, 1000]``.

    The winning number equals Alice's number for pick 0, so that pick wins
    the jackpot.
    """

    def setUp(self):
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)
        self.session = self.Session()

        self.epoch = 0
        self.now = 0
        self.winning_number = user_number(ALICE, 0)
        self.clock = DrawClock(
            self.session,
            epoch_source=lambda: self.epoch,
            time_source=lambda: self.now,
            randomness=lambda: self.winning_number.to_bytes(32, "little"),
        )
        self.provider = CountingProvider(self.clock)

    def tearDown(self):
        self.session.close()
        self.engine.dispose()

    def deposit(self, account_id: str, amount: int, time: int) -> None:
        ledger = TimeWeightedLedger(self.session)
        ledger.increase_balance(account_id, amount, time)
        ledger.increase_total_supply(amount, time)

    def run_draw(self, deposits=((ALICE, 300), (BOB, 100))) -> int:
        draw_id = self.clock.start_draw()
        for account_id, amount in deposits:
            self.deposit(account_id, amount, self.now)
        self.epoch += 5
        self.now += 1000
        self.clock.complete_draw()
        return draw_id

    def builder(self, **kwargs) -> PrizeDistributionBuilder:
        return PrizeDistributionBuilder(self.session, self.provider, **kwargs)


class PrizeDistributionBuilderTests(PoolScenarioTestCase):
    def test_distribution_from_average_supply(self):
        draw_id = self.run_draw()
        distribution = self.builder().add_prize_distribution(draw_id, PRIZE)

        self.assertEqual(distribution.draw_id, draw_id)
        self.assertEqual(distribution.max_picks, 400)
        self.assertEqual(distribution.bit_range_size, 1)
        # 2**9 = 512 is the first power of two covering 400 picks.
        self.assertEqual(distribution.cardinality, 9)
        self.assertEqual(distribution.number_of_picks, 512)
        self.assertEqual(distribution.prize, PRIZE)
        self.assertEqual(distribution.winning_number, self.winning_number)
        self.assertEqual(distribution.start_time, 1000 + PRIZE_DISTRIBUTION_TIME_OFFSET_MS)
        self.assertEqual(distribution.end_time, 1000 + 2 * PRIZE_DISTRIBUTION_TIME_OFFSET_MS)
        self.assertEqual(len(distribution.tiers), 16)
        payload = distribution.to_json()
        self.assertEqual(payload["prize"], str(PRIZE))
        self.assertEqual(payload["number_of_picks"], "512")

    def test_second_call_is_a_no_op(self):
        draw_id = self.run_draw()
        builder = self.builder()
        first = builder.add_prize_distribution(draw_id, PRIZE)
        second = builder.add_prize_distribution(draw_id, 5)
        self.assertEqual(second.id, first.id)
        self.assertEqual(second.prize, PRIZE)
        self.assertEqual(self.provider.calls, 1)

    def test_explicit_parameters(self):
        draw_id = self.run_draw()
        distribution = self.builder().add_prize_distribution(
            draw_id, PRIZE, cardinality=3, bit_range_size=4
        )
        self.assertEqual(distribution.cardinality, 3)
        self.assertEqual(distribution.bit_range_size, 4)
        self.assertEqual(distribution.number_of_picks, 4096)

    def test_invalid_parameters(self):
        draw_id = self.run_draw()
        builder = self.builder()
        for cardinality, bit_range_size in ((17, 1), (2, 200), (2, 1), (0, 8)):
            with self.subTest(cardinality=cardinality, bit_range_size=bit_range_size):
                with self.assertRaises(InvalidDistributionParametersError):
                    builder.add_prize_distribution(
                        draw_id,
                        PRIZE,
                        cardinality=cardinality,
                        bit_range_size=bit_range_size,
                    )
        self.assertTrue(builder.get_prize_distribution(draw_id).is_default)

    def test_invalid_bit_range_without_cardinality(self):
        draw_id = self.run_draw()
        builder = self.builder()
        for bit_range_size in (0, -1, 257):
            with self.subTest(bit_range_size=bit_range_size):
                with self.assertRaises(InvalidDistributionParametersError):
                    builder.add_prize_distribution(draw_id, PRIZE, bit_range_size=bit_range_size)
        self.assertTrue(builder.get_prize_distribution(draw_id).is_default)

    def test_smallest_cardinality_is_bounded(self):
        self.assertEqual(smallest_cardinality(400, 1), 9)
        self.assertEqual(smallest_cardinality(0, 4), 1)
        self.assertEqual(smallest_cardinality(1 << 16, 1), 16)
        with self.assertRaises(InvalidDistributionParametersError):
            smallest_cardinality((1 << 16) + 1, 1)
        with self.assertRaises(InvalidDistributionParametersError):
            smallest_cardinality(400, 0)

    def test_unknown_draw(self):
        with self.assertRaises(DrawNotFoundError):
            self.builder().add_prize_distribution(42, PRIZE)

    def test_provider_failure(self):
        class BrokenProvider:
            def get_draw(self, draw_id):
                raise TimeoutError("draw service timed out")

        builder = PrizeDistributionBuilder(self.session, BrokenProvider())
        with self.assertRaises(DrawProviderError):
            builder.add_prize_distribution(1, PRIZE)

    def test_missing_distribution_is_default(self):
        self.assertTrue(self.builder().get_prize_distribution(7).is_default)

    def test_old_distributions_are_evicted(self):
        settings = PoolSettings(prize_buffer_capacity=1)
        first = self.run_draw()
        second = self.run_draw(deposits=())
        builder = self.builder(settings=settings)
        builder.add_prize_distribution(first, PRIZE)
        builder.add_prize_distribution(second, PRIZE)
        self.assertTrue(builder.get_prize_distribution(first).is_default)
        self.assertEqual(
            [d.draw_id for d in builder.get_prize_distributions()], [second]
        )


class PickAllocatorTests(PoolScenarioTestCase):
    def setUp(self):
        super().setUp()
        self.draw_id = self.run_draw()
        self.builder().add_prize_distribution(self.draw_id, PRIZE)
        self.provider.calls = 0
        self.allocator = PickAllocator(self.session, self.provider)

    def test_picks_are_proportional_to_average_balance(self):
        self.assertEqual(self.allocator.get_picks(ALICE, self.draw_id), 300)
        self.assertEqual(self.allocator.get_picks(BOB, self.draw_id), 100)
        self.assertEqual(self.allocator.get_picks("carol.testnet", self.draw_id), 0)

    def test_picks_are_computed_once(self):
        self.assertEqual(self.allocator.allowed_picks(ALICE, self.draw_id), 0)
        self.assertEqual(self.allocator.get_picks(ALICE, self.draw_id), 300)
        self.deposit(ALICE, 10_000, self.now)
        self.assertEqual(self.allocator.get_picks(ALICE, self.draw_id), 300)
        self.assertEqual(self.allocator.allowed_picks(ALICE, self.draw_id), 300)
        self.assertEqual(self.provider.calls, 1)

    def test_record_picks_is_write_once(self):
        self.allocator.record_picks(ALICE, self.draw_id, 5)
        with self.assertRaises(PicksAlreadyGeneratedError):
            self.allocator.record_picks(ALICE, self.draw_id, 6)
        self.assertEqual(self.allocator.allowed_picks(ALICE, self.draw_id), 5)

    def test_first_writer_wins(self):
        allocator = self.allocator

        class RacingAllocator(PickAllocator):
            def compute_picks(self, account_id, draw_id):
                picks = super().compute_picks(account_id, draw_id)
                # Another caller stores its result while this one computes.
                allocator.record_picks(account_id, draw_id, 7)
                return picks

        racing = RacingAllocator(self.session, self.provider)
        with self.assertLogs("prizepool.prizes.picks", level="WARNING"):
            self.assertEqual(racing.get_picks(ALICE, self.draw_id), 7)
        self.assertEqual(self.allocator.allowed_picks(ALICE, self.draw_id), 7)

    def test_distribution_required(self):
        with self.assertRaises(PrizeDistributionNotFoundError):
            self.allocator.get_picks(ALICE, self.draw_id + 1)

    def test_empty_pool_yields_no_picks(self):
        ledger = TimeWeightedLedger(self.session)
        ledger.decrease_balance(ALICE, 300, self.now)
        ledger.decrease_balance(BOB, 100, self.now)
        ledger.decrease_total_supply(400, self.now)

        empty_draw = self.run_draw(deposits=())
        distribution = self.builder().add_prize_distribution(empty_draw, PRIZE)
        self.assertEqual(distribution.max_picks, 0)
        self.assertEqual(distribution.cardinality, 1)
        self.assertEqual(self.allocator.get_picks(ALICE, empty_draw), 0)


class ClaimTests(PoolScenarioTestCase):
    def setUp(self):
        super().setUp()
        self.draw_id = self.run_draw()
        self.builder().add_prize_distribution(self.draw_id, PRIZE)
        allocator = PickAllocator(self.session, self.provider)
        allocator.get_picks(ALICE, self.draw_id)
        allocator.get_picks(BOB, self.draw_id)
        self.yield_source = FakeYieldSource()
        self.resolver = ClaimResolver(self.session, self.yield_source, token_id=TOKEN_ID)
        self.picks = PickLedger(self.session)

    def losing_pick(self) -> int:
        for pick in range(1, 300):
            if self.resolver.evaluate(ALICE, self.draw_id, pick).payout == 0:
                return pick
        self.fail("no losing pick among Alice's picks")

    def test_jackpot_is_paid_once(self):
        result = self.resolver.claim(ALICE, self.draw_id, 0)
        self.assertTrue(result.paid)
        self.assertEqual(result.evaluation.tier, 0)
        self.assertEqual(result.payout, 200_000)
        self.assertEqual(
            self.yield_source.claims,
            [
                {
                    "account_id": ALICE,
                    "token_id": TOKEN_ID,
                    "amount": 200_000,
                    "draw_id": self.draw_id,
                    "pick": 0,
                }
            ],
        )

        with self.assertRaises(PickAlreadyClaimedError):
            self.resolver.claim(ALICE, self.draw_id, 0)
        self.assertEqual(len(self.yield_source.claims), 1)
        self.assertTrue(self.picks.is_claimed(ALICE, self.draw_id, 0))
        self.assertEqual(self.picks.claimed_picks(ALICE, self.draw_id), [0])

    def test_failed_payout_can_be_retried(self):
        self.yield_source.failures = 1
        with self.assertRaises(YieldSourceError):
            self.resolver.claim(ALICE, self.draw_id, 0)
        self.assertFalse(self.picks.is_claimed(ALICE, self.draw_id, 0))
        self.assertEqual(self.yield_source.claims, [])

        result = self.resolver.claim(ALICE, self.draw_id, 0)
        self.assertTrue(result.paid)
        with self.assertRaises(PickAlreadyClaimedError):
            self.resolver.claim(ALICE, self.draw_id, 0)
        self.assertEqual(len(self.yield_source.claims), 1)

    def test_unexpected_payout_error_releases_pick(self):
        self.yield_source.failures = 1
        self.yield_source.error = ConnectionResetError("relay dropped the connection")
        with self.assertRaises(ConnectionResetError):
            self.resolver.claim(ALICE, self.draw_id, 0)
        self.assertFalse(self.picks.is_claimed(ALICE, self.draw_id, 0))

        self.assertTrue(self.resolver.claim(ALICE, self.draw_id, 0).paid)
        self.assertEqual(len(self.yield_source.claims), 1)

    def test_zero_payout_skips_yield_source(self):
        pick = self.losing_pick()
        result = self.resolver.claim(ALICE, self.draw_id, pick)
        self.assertFalse(result.paid)
        self.assertEqual(result.payout, 0)
        self.assertEqual(self.yield_source.claims, [])
        self.assertTrue(self.picks.is_claimed(ALICE, self.draw_id, pick))

    def test_pick_outside_allowance(self):
        with self.assertRaises(InvalidPickError):
            self.resolver.claim(BOB, self.draw_id, 100)
        with self.assertRaises(InvalidPickError):
            self.resolver.claim(BOB, self.draw_id, -1)

    def test_picks_not_generated(self):
        with self.assertRaises(PicksNotGeneratedError):
            self.resolver.claim("carol.testnet", self.draw_id, 0)

    def test_distribution_missing(self):
        with self.assertRaises(PrizeDistributionNotFoundError):
            self.resolver.claim(ALICE, self.draw_id + 1, 0)

    def test_evaluate_has_no_side_effects(self):
        evaluation = self.resolver.evaluate(ALICE, self.draw_id, 0)
        self.assertEqual(evaluation.user_number, self.winning_number)
        self.assertEqual(evaluation.payout, 200_000)
        self.assertFalse(self.picks.is_claimed(ALICE, self.draw_id, 0))

    def test_best_pick_skips_claimed_picks(self):
        best = self.resolver.best_pick(ALICE, self.draw_id, 300)
        self.assertEqual(best.pick, 0)
        self.resolver.claim(ALICE, self.draw_id, 0)
        best = self.resolver.best_pick(ALICE, self.draw_id, 300)
        self.assertNotEqual(best.pick, 0)
        self.assertLessEqual(best.payout, 200_000)
        self.assertIsNone(self.resolver.best_pick(ALICE, self.draw_id, 0))


class PickLedgerTests(PoolScenarioTestCase):
    def setUp(self):
        super().setUp()
        self.draw_id = self.run_draw()
        self.builder().add_prize_distribution(self.draw_id, PRIZE)
        PickAllocator(self.session, self.provider).record_picks(ALICE, self.draw_id, 3)
        self.picks = PickLedger(self.session)

    def test_reserve_then_release(self):
        token = self.picks.reserve(ALICE, self.draw_id, 1)
        self.assertTrue(self.picks.is_claimed(ALICE, self.draw_id, 1))
        with self.assertRaises(PickAlreadyClaimedError):
            self.picks.reserve(ALICE, self.draw_id, 1)

        self.picks.finalize(token, succeeded=False)
        self.assertFalse(self.picks.is_claimed(ALICE, self.draw_id, 1))
        self.assertEqual(self.session.get(PickClaim, token.claim_id).state, "unclaimed")

        again = self.picks.reserve(ALICE, self.draw_id, 1)
        self.assertEqual(again.claim_id, token.claim_id)

    def test_finalize_commits_once(self):
        token = self.picks.reserve(ALICE, self.draw_id, 2)
        self.picks.finalize(token, succeeded=True, payout=10)
        claim = self.session.get(PickClaim, token.claim_id)
        self.assertEqual(claim.state, "claimed")
        self.assertEqual(claim.payout, 10)
        self.assertIsNotNone(claim.finalized_at)
        with self.assertRaises(ValueError):
            self.picks.finalize(token, succeeded=False)

    def test_claimed_picks_sorted(self):
        for pick in (2, 0):
            self.picks.reserve(ALICE, self.draw_id, pick)
        self.assertEqual(self.picks.claimed_picks(ALICE, self.draw_id), [0, 2])
        self.assertEqual(self.picks.claimed_picks(BOB, self.draw_id), [])


if __name__ == "__main__":
    unittest.main()
