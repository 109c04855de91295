import logging
import secrets

from prizepool.db.engine import get_sessionmaker, make_engine
from prizepool.draw.clock import DrawClock
from prizepool.models import Base
from prizepool.prizes.claims import ClaimResolver
from prizepool.settings import load_settings
from prizepool.workflows import add_prize_distribution, deposit, get_picks, run_draw_cycle
from prizepool.yield_source.adapter import YieldSource

TOKEN_ID = "usdt.fakes.testnet"
VENUE_ADDRESS = "contract.1638481328.burrow.testnet"
HOUR_MS = 3600 * 1000


class OfflineVenue:
    """Stands in for the yield-source relay so the seed runs without network access."""

    def __init__(self, reward: int):
        self.reward = reward

    def transfer(self, address, token_id, amount, **kwargs):
        return {"status": "success"}

    def claim(self, address, account_id, token_id, amount, draw_id, pick, **kwargs):
        return {"status": "success"}

    def withdraw(self, address, account_id, token_id, amount, **kwargs):
        return {"status": "success"}

    def get_reward(self, address, **kwargs):
        return {"amount": str(self.reward)}


def main() -> None:
    """Reset the development database and run one complete pool cycle."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")
    settings = load_settings()
    engine = make_engine()

    # SQLite refuses to drop tables referenced by foreign keys while checks are on.
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    epoch = {"height": 100}
    clock_ms = {"now": 0}

    with Session.begin() as session:
        venue = YieldSource.burrow(session, VENUE_ADDRESS, client=OfflineVenue(reward=1_000_000))
        clock = DrawClock(
            session,
            epoch_source=lambda: epoch["height"],
            time_source=lambda: clock_ms["now"],
            randomness=lambda: secrets.token_bytes(32),
            settings=settings,
        )

        run_draw_cycle(session, clock)
        deposit(session, "alice.testnet", 1_000, 0, venue, token_id=TOKEN_ID)
        deposit(session, "bob.testnet", 300, 5 * HOUR_MS, venue, token_id=TOKEN_ID)
        deposit(session, "carol.testnet", 50, 10 * HOUR_MS, venue, token_id=TOKEN_ID)

        epoch["height"] += settings.draw_duration_epochs
        clock_ms["now"] = 24 * HOUR_MS
        cycle = run_draw_cycle(session, clock)
        draw = cycle.completed
        assert draw is not None

        distribution = add_prize_distribution(
            session, clock, draw.draw_id, yield_source=venue, settings=settings
        )
        resolver = ClaimResolver(session, venue, token_id=TOKEN_ID, settings=settings)
        for account_id in ("alice.testnet", "bob.testnet", "carol.testnet"):
            picks = get_picks(session, clock, account_id, draw.draw_id, settings=settings)
            best = resolver.best_pick(account_id, draw.draw_id, picks)
            if best is None:
                print(f"{account_id}: no picks")
                continue
            result = resolver.claim(account_id, draw.draw_id, best.pick)
            print(
                f"{account_id}: {picks} picks, best pick {best.pick} "
                f"tier {best.tier} paid {result.payout}"
            )

    print(
        f"Seeded draw {distribution.draw_id}: prize {distribution.prize}, "
        f"max_picks {distribution.max_picks}, cardinality {distribution.cardinality}"
    )


if __name__ == "__main__":
    main()
