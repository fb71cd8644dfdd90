"""
Shared fixtures for the staking pool tests.

Every pool runs on a FakeClock anchored at TEST_GENESIS, an InMemoryAssetBank
pre-funded for the test principals and a private EventBus.
"""
import pytest

from shipstake.pool.core.events import EventBus
from shipstake.pool.core.staking_pool import StakingPool
from shipstake.pool.core.transfers import InMemoryAssetBank
from shipstake.protocol.config.economic_model import DEVNET
from shipstake.protocol.config.params import NetworkConfig, WEEK


TEST_GENESIS = 1_700_000_000
DAY = 24 * 60 * 60

ADMIN = "admin"
EMITTER = "emitter"
DEPOSITOR = "game"
ALICE = "alice"
BOB = "bob"
CAROL = "carol"

SHIP = "ship"
USDC = "usdc"
GEM = "gem"

POOL_ACCOUNT = "pool"
STARTING_BALANCE = 1_000_000

TEST_NETWORK = NetworkConfig(
    network_id="shipstake-test",
    genesis_time=TEST_GENESIS,
    staking_asset=SHIP,
    pool_account=POOL_ACCOUNT,
)


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: int = TEST_GENESIS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds

    def advance_days(self, days: float):
        self.now += int(days * DAY)

    def set(self, now: int):
        self.now = now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def admin_config():
    return DEVNET.with_changes(
        admins=frozenset({ADMIN}),
        emission_recorders=frozenset({EMITTER}),
        revenue_depositors=frozenset({DEPOSITOR}),
    )


@pytest.fixture
def bank():
    return InMemoryAssetBank({
        SHIP: {ALICE: STARTING_BALANCE, BOB: STARTING_BALANCE, CAROL: STARTING_BALANCE, EMITTER: STARTING_BALANCE},
        USDC: {DEPOSITOR: STARTING_BALANCE},
        GEM: {DEPOSITOR: STARTING_BALANCE},
    })


@pytest.fixture
def clean_event_bus():
    bus = EventBus()
    yield bus
    bus.clear()


@pytest.fixture
def pool(bank, clock, admin_config, clean_event_bus):
    p = StakingPool(bank, config=admin_config, network=TEST_NETWORK, clock=clock, bus=clean_event_bus)
    yield p
    p.close()


@pytest.fixture
def revenue_pool(pool):
    """Pool with USDC and GEM whitelisted as revenue assets."""
    pool.register_revenue_asset(ADMIN, USDC)
    pool.register_revenue_asset(ADMIN, GEM)
    return pool


def epoch_start(epoch: int) -> int:
    return TEST_GENESIS + (epoch - 1) * WEEK
