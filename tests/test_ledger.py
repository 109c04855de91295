import unittest

from prizepool.db.engine import get_sessionmaker, make_engine
from prizepool.errors import InsufficientBalanceError, InvalidIntervalError
from prizepool.ledger import TimeWeightedLedger
from prizepool.models import AccountBalance, Base, Twab
from prizepool.models.types import U128_MAX


def mint(ledger: TimeWeightedLedger, account_id: str, amount: int, time: int) -> None:
    ledger.increase_balance(account_id, amount, time)
    ledger.increase_total_supply(amount, time)


def burn(ledger: TimeWeightedLedger, account_id: str, amount: int, time: int) -> None:
    ledger.decrease_balance(account_id, amount, time)
    ledger.decrease_total_supply(amount, time)


class LedgerTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

    def tearDown(self):
        self.engine.dispose()


class TwabHistoryTests(LedgerTestCase):
    def setUp(self):
        super().setUp()
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            mint(ledger, "mmmm", 100, 0)
            mint(ledger, "sec", 30, 5)
            mint(ledger, "mmmm", 50, 10)
            burn(ledger, "mmmm", 100, 20)
            mint(ledger, "sec", 80, 26)
            burn(ledger, "mmmm", 20, 30)
            mint(ledger, "mmmm", 10, 40)
            burn(ledger, "sec", 50, 50)

    def test_balances_after_history(self):
        with self.Session() as session:
            ledger = TimeWeightedLedger(session)
            self.assertEqual(ledger.total_supply(), 100)
            self.assertEqual(ledger.balance_of("mmmm"), 40)
            self.assertEqual(ledger.balance_of("sec"), 60)
            self.assertEqual(ledger.balance_of("nobody"), 0)

    def test_account_checkpoints(self):
        with self.Session() as session:
            ledger = TimeWeightedLedger(session)
            self.assertEqual(
                [cp.cumulative_amount for cp in ledger.checkpoints("mmmm")],
                [0, 1000, 2500, 3000, 3300],
            )
            self.assertEqual(
                ledger.checkpoints("sec"),
                [Twab(0, 5), Twab(630, 26), Twab(3270, 50)],
            )
            self.assertEqual(ledger.checkpoints("nobody"), [])

    def test_total_supply_checkpoints(self):
        with self.Session() as session:
            row = AccountBalance.total_supply(session)
            amounts = [
                row.calculate_twab(session, t).cumulative_amount
                for t in (0, 5, 10, 20, 26)
            ]
            self.assertEqual(amounts, [0, 500, 1150, 2950, 3430])

    def test_average_on_existing_checkpoints(self):
        with self.Session() as session:
            ledger = TimeWeightedLedger(session)
            self.assertEqual(ledger.average_balance_between_timestamps("mmmm", 0, 20), 125)

    def test_average_interpolates_between_checkpoints(self):
        with self.Session() as session:
            ledger = TimeWeightedLedger(session)
            self.assertEqual(ledger.average_balance_between_timestamps("mmmm", 5, 15), 125)
            self.assertEqual(ledger.average_balance_between_timestamps("mmmm", 5, 10), 100)
            self.assertEqual(ledger.average_balance_between_timestamps("mmmm", 3, 13), 115)
            self.assertEqual(ledger.average_balance_between_timestamps("mmmm", 4, 28), 104)

    def test_average_extrapolates_outside_history(self):
        with self.Session() as session:
            ledger = TimeWeightedLedger(session)
            self.assertEqual(ledger.average_balance_between_timestamps("mmmm", 4, 45), 75)
            # No history before t=5 counts as zero; the live balance holds after t=50.
            self.assertEqual(ledger.average_balance_between_timestamps("sec", 0, 60), 64)

    def test_average_total_supply(self):
        with self.Session() as session:
            ledger = TimeWeightedLedger(session)
            self.assertEqual(ledger.average_total_supply_between_timestamps(0, 50), 139)

    def test_unknown_account_averages_zero(self):
        with self.Session() as session:
            ledger = TimeWeightedLedger(session)
            self.assertEqual(ledger.average_balance_between_timestamps("nobody", 0, 60), 0)

    def test_empty_interval_rejected(self):
        with self.Session() as session:
            ledger = TimeWeightedLedger(session)
            with self.assertRaises(InvalidIntervalError):
                ledger.average_balance_between_timestamps("mmmm", 20, 20)
            with self.assertRaises(InvalidIntervalError):
                ledger.average_balance_between_timestamps("nobody", 30, 10)
            with self.assertRaises(InvalidIntervalError):
                ledger.average_total_supply_between_timestamps(10, 5)


class LedgerMutationTests(LedgerTestCase):
    def test_deposit_withdraw_example(self):
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            mint(ledger, "alice", 100, 0)
            mint(ledger, "alice", 50, 10)
            burn(ledger, "alice", 100, 20)
            self.assertEqual(ledger.balance_of("alice"), 50)
            self.assertEqual(ledger.average_balance_between_timestamps("alice", 0, 20), 125)

    def test_extrapolation_uses_live_balance(self):
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            ledger.increase_balance("alice", 100, 10)
            row = AccountBalance.get(session, "alice")
            self.assertEqual(row.calculate_twab(session, 20), Twab(1000, 20))
            self.assertEqual(row.calculate_twab(session, 5), Twab(0, 5))

    def test_insufficient_balance_writes_nothing(self):
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            ledger.increase_balance("alice", 10, 0)
            with self.assertRaises(InsufficientBalanceError):
                ledger.decrease_balance("alice", 11, 5)
            self.assertEqual(ledger.balance_of("alice"), 10)
            self.assertEqual(ledger.checkpoints("alice"), [Twab(0, 0)])

    def test_unknown_account_decrease_writes_nothing(self):
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            with self.assertRaises(InsufficientBalanceError):
                ledger.decrease_balance("ghost", 1, 5)
            self.assertIsNone(AccountBalance.get(session, "ghost"))
            self.assertEqual(ledger.checkpoints("ghost"), [])

    def test_check_increase_writes_nothing(self):
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            ledger.check_increase("alice", 10, 0)
            self.assertIsNone(AccountBalance.get(session, "alice"))

            mint(ledger, "alice", 10, 100)
            with self.assertRaises(InvalidIntervalError):
                ledger.check_increase("alice", 10, 50)
            with self.assertRaises(InvalidIntervalError):
                ledger.check_increase("bob", 10, 50)
            with self.assertRaises(ValueError):
                ledger.check_increase("bob", U128_MAX, 200)
            ledger.check_increase("bob", 10, 100)
            self.assertEqual(ledger.checkpoints("alice"), [Twab(0, 100)])

    def test_same_instant_mutation_adds_no_checkpoint(self):
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            ledger.increase_balance("alice", 10, 0)
            ledger.increase_balance("alice", 10, 7)
            ledger.decrease_balance("alice", 5, 7)
            ledger.increase_balance("alice", 1, 7)
            self.assertEqual(ledger.checkpoints("alice"), [Twab(0, 0), Twab(70, 7)])
            self.assertEqual(ledger.balance_of("alice"), 16)

    def test_mutation_in_the_past_rejected(self):
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            ledger.increase_balance("alice", 10, 100)
            with self.assertRaises(InvalidIntervalError):
                ledger.increase_balance("alice", 10, 50)

    def test_negative_amount_rejected(self):
        with self.Session.begin() as session:
            ledger = TimeWeightedLedger(session)
            with self.assertRaises(ValueError):
                ledger.increase_balance("alice", -1, 0)
            with self.assertRaises(ValueError):
                ledger.decrease_total_supply(-1, 0)

    def test_u128_balances_survive_round_trip(self):
        big = (1 << 127) + 12345
        with self.Session.begin() as session:
            TimeWeightedLedger(session).increase_balance("whale", big, 0)
        with self.Session() as session:
            self.assertEqual(TimeWeightedLedger(session).balance_of("whale"), big)


if __name__ == "__main__":
    unittest.main()
