"""
Tests for pool events and Prometheus metrics

Tests:
- EventBus pub/sub mechanism
- Typed PoolEvent constructors and publish()
- Lifecycle events emitted by StakingPool
- Counters and gauges exported on the metrics registry
"""
import pytest
from prometheus_client import generate_latest

from shipstake.pool.core import events as ev
from shipstake.pool.observability.metrics import metrics_registry, update_metrics
from shipstake.protocol.config.params import WEEK
from shipstake.protocol.types.common import StateError, UnauthorizedError

from conftest import ADMIN, ALICE, EMITTER, SHIP


def _sample(name, **labels):
    return metrics_registry.get_sample_value(name, labels) or 0.0


# ═══════════════════════════════════════════════════════════════════
# EVENTBUS TESTS
# ═══════════════════════════════════════════════════════════════════

def test_eventbus_subscribe_and_emit(clean_event_bus):
    bus = clean_event_bus
    callback_data = []

    def callback(**data):
        callback_data.append(data)

    bus.subscribe('test_event', callback)
    bus.emit('test_event', value=42, name='test')

    assert callback_data == [{'value': 42, 'name': 'test'}]


def test_eventbus_unsubscribe(clean_event_bus):
    bus = clean_event_bus
    called = []

    def callback(**data):
        called.append(True)

    bus.subscribe('test_event', callback)
    bus.emit('test_event')
    bus.unsubscribe('test_event', callback)
    bus.emit('test_event')

    assert len(called) == 1


def test_eventbus_error_handling(clean_event_bus):
    """Errors in callbacks don't break event emission."""
    bus = clean_event_bus
    good_callback_called = []

    def bad_callback(**data):
        raise ValueError("Test error")

    def good_callback(**data):
        good_callback_called.append(True)

    bus.subscribe('test_event', bad_callback)
    bus.subscribe('test_event', good_callback)

    bus.emit('test_event')
    assert len(good_callback_called) == 1


def test_on_decorator_registers_listener(clean_event_bus):
    seen = []

    @clean_event_bus.on(ev.POOL_PAUSED)
    def paused(**data):
        seen.append(data)

    assert callable(paused)
    clean_event_bus.emit(ev.POOL_PAUSED, by="ops")
    assert seen == [{"by": "ops"}]


def test_pool_event_constructors():
    exit_event = ev.PoolEvent.stake_exited(3, ALICE, 900, 100, closed=True, emergency=True)
    assert exit_event == (ev.STAKE_CLOSED, {
        "stake_id": 3, "owner": ALICE, "net_amount": 900, "penalty": 100, "emergency": True,
    })
    assert ev.PoolEvent.stake_exited(3, ALICE, 360, 40, closed=False).name == ev.STAKE_REDUCED
    assert ev.PoolEvent.pause_changed(False, ADMIN) == (ev.POOL_UNPAUSED, {"by": ADMIN})
    assert ev.PoolEvent.config_updated(ADMIN, emergency_exit_enabled=True).data == {
        "by": ADMIN, "emergency_exit_enabled": True,
    }

    claimed = ev.PoolEvent.rewards_claimed(ALICE, [1, 2], {SHIP: 700, "usdc": 5})
    assert [e.data["asset"] for e in claimed] == [SHIP, "usdc"]
    assert all(e.name == ev.REWARDS_CLAIMED and e.data["stake_ids"] == [1, 2] for e in claimed)
    assert ev.PoolEvent.rewards_claimed(ALICE, [1], {}) == []

    all_names = {exit_event.name, ev.STAKE_REDUCED, ev.POOL_UNPAUSED} | {e.name for e in claimed}
    assert all_names <= ev.POOL_EVENTS


def test_publish_emits_in_order(clean_event_bus):
    seen = []
    for name in (ev.STAKE_OPENED, ev.RETAINED_SWEPT):
        clean_event_bus.subscribe(name, lambda _n=name, **d: seen.append((_n, d["amount"])))

    published = clean_event_bus.publish([
        ev.PoolEvent(ev.STAKE_OPENED, {"amount": 1}),
        ev.PoolEvent.retained_swept(ADMIN, "treasury", 2, 0),
        ev.PoolEvent.revenue_asset_registered("usdc"),
    ])

    assert published == 3
    assert seen == [(ev.STAKE_OPENED, 1), (ev.RETAINED_SWEPT, 2)]


def test_pool_lifecycle_events(pool, clean_event_bus, clock):
    seen = []
    for name in (ev.STAKE_OPENED, ev.STAKE_REDUCED, ev.STAKE_CLOSED, ev.EPOCH_RECORDED,
                 ev.POOL_PAUSED, ev.POOL_UNPAUSED, ev.CONFIG_UPDATED):
        clean_event_bus.subscribe(name, lambda _n=name, **d: seen.append((_n, d)))

    stake = pool.open_stake(ALICE, 1000, 1)
    pool.record_epoch_emission(EMITTER, 100)
    pool.pause(ADMIN)
    pool.unpause(ADMIN)
    pool.set_emergency_exit(ADMIN, True)
    pool.reduce_stake(ALICE, stake.stake_id, 400)
    clock.advance(WEEK)
    pool.reduce_stake(ALICE, stake.stake_id)

    assert [name for name, _ in seen] == [
        ev.STAKE_OPENED, ev.EPOCH_RECORDED, ev.POOL_PAUSED, ev.POOL_UNPAUSED,
        ev.CONFIG_UPDATED, ev.STAKE_REDUCED, ev.STAKE_CLOSED,
    ]
    assert seen[1][1]["asset"] == SHIP
    assert seen[1][1]["total_weighted_stake"] == 1000
    assert seen[-1][1]["penalty"] == 0


def test_listener_failure_does_not_undo_operation(pool, clean_event_bus):
    def explode(**data):
        raise RuntimeError("listener down")

    clean_event_bus.subscribe(ev.STAKE_OPENED, explode)
    stake = pool.open_stake(ALICE, 1000, 1)
    assert pool.get_stake(stake.stake_id).principal == 1000


# ═══════════════════════════════════════════════════════════════════
# METRICS TESTS
# ═══════════════════════════════════════════════════════════════════

def test_operation_counters(pool, clock):
    opened = _sample('shipstake_operations_total', op='OPEN_STAKE')
    recorded = _sample('shipstake_rewards_recorded_total', asset=SHIP)
    claimed = _sample('shipstake_rewards_claimed_total', asset=SHIP)
    rejected = _sample('shipstake_operation_failures_total', op='PAUSE', error='UnauthorizedError')
    empty = _sample('shipstake_operation_failures_total', op='CLAIM_EMISSION', error='StateError')

    stake = pool.open_stake(ALICE, 1000, 1)
    pool.record_epoch_emission(EMITTER, 700)
    with pytest.raises(UnauthorizedError):
        pool.pause(ALICE)
    with pytest.raises(StateError):
        pool.claim_emission(ALICE, stake.stake_id)
    clock.advance(WEEK)
    pool.claim_emission(ALICE, stake.stake_id)

    assert _sample('shipstake_operations_total', op='OPEN_STAKE') == opened + 1
    assert _sample('shipstake_rewards_recorded_total', asset=SHIP) == recorded + 700
    assert _sample('shipstake_rewards_claimed_total', asset=SHIP) == claimed + 700
    assert _sample('shipstake_operation_failures_total', op='PAUSE', error='UnauthorizedError') == rejected + 1
    assert _sample('shipstake_operation_failures_total', op='CLAIM_EMISSION', error='StateError') == empty + 1


def test_update_metrics_sets_gauges(pool, clock):
    pool.open_stake(ALICE, 1000, 52)
    clock.advance(WEEK)
    pool.pause(ADMIN)

    update_metrics(pool)

    assert _sample('shipstake_total_staked') == 1000
    assert _sample('shipstake_total_weighted_stake') == 2000
    assert _sample('shipstake_open_stakes') == 1
    assert _sample('shipstake_current_epoch') == 2
    assert _sample('shipstake_pool_paused') == 1
    assert b'shipstake_total_staked 1000.0' in generate_latest(metrics_registry)
