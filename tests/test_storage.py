"""
Tests for pool persistence

Tests:
- StorageDB key/value operations
- PoolState persist / load round trip through a restarted StakingPool
- Storage written before assets move, and rolled back with them
"""
import os
import sqlite3

import pytest

from shipstake.pool.core.staking_pool import StakingPool
from shipstake.pool.storage.db import StorageDB
from shipstake.protocol.config.params import NetworkConfig, WEEK
from shipstake.protocol.types.common import StateError, TransferFailure, ValidationError

from conftest import ADMIN, ALICE, BOB, DEPOSITOR, EMITTER, SHIP, STARTING_BALANCE, TEST_NETWORK, USDC


@pytest.fixture
def db_path(tmp_path):
    return os.path.join(tmp_path, "pool.db")


def _open_pool(bank, clock, admin_config, bus, db_path, network=TEST_NETWORK):
    return StakingPool(bank, config=admin_config, network=network, clock=clock, db_path=db_path, bus=bus)


def test_storage_db_basics(db_path):
    db = StorageDB(db_path)
    db.set_state("a:1", "x")
    db.set_many({"a:2": "y", "b:1": "z"})

    assert db.get_state("a:1") == "x"
    assert db.get_state("missing") is None
    assert db.get_state_by_prefix("a:") == {"a:1": "x", "a:2": "y"}

    db.set_many({"a:1": None, "b:2": "w"})
    assert db.get_state("a:1") is None
    assert db.get_state("b:2") == "w"

    db.clear_state()
    assert db.get_state_by_prefix("") == {}
    db.close()


def test_empty_db_gives_empty_pool(bank, clock, admin_config, clean_event_bus, db_path):
    pool = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)

    assert pool.pool_totals().stake_count == 0
    assert pool.supported_revenue_assets() == []
    pool.close()


def test_state_survives_restart(bank, clock, admin_config, clean_event_bus, db_path):
    pool = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)
    pool.register_revenue_asset(ADMIN, USDC)
    a = pool.open_stake(ALICE, 1000, 52)
    b = pool.open_stake(BOB, 1000, 1)
    pool.record_epoch_emission(EMITTER, 900)
    pool.deposit_revenue(DEPOSITOR, USDC, 300)
    clock.advance(WEEK // 2)
    pool.claim_emission(ALICE, a.stake_id)
    pool.reduce_stake(BOB, b.stake_id, 400)
    pool.pause(ADMIN)

    expected = {
        "totals": pool.pool_totals(),
        "stakes": [pool.get_stake(a.stake_id), pool.get_stake(b.stake_id)],
        "pending": [pool.pending_all(a.stake_id), pool.pending_all(b.stake_id)],
        "claims": sorted(pool.state.claims.items()),
        "snapshots": [pool.snapshot(SHIP, 1), pool.snapshot(USDC, 1)],
    }
    pool.close()

    restarted = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)
    assert restarted.is_paused()
    assert restarted.supported_revenue_assets() == [USDC]
    assert restarted.pool_totals() == expected["totals"]
    assert [restarted.get_stake(a.stake_id), restarted.get_stake(b.stake_id)] == expected["stakes"]
    assert [restarted.pending_all(a.stake_id), restarted.pending_all(b.stake_id)] == expected["pending"]
    assert sorted(restarted.state.claims.items()) == expected["claims"]
    assert [restarted.snapshot(SHIP, 1), restarted.snapshot(USDC, 1)] == expected["snapshots"]

    # Ids keep counting from where they stopped
    restarted.unpause(ADMIN)
    assert restarted.open_stake(ALICE, 10, 1).stake_id == 3
    restarted.close()


def test_load_rejects_other_staking_asset(bank, clock, admin_config, clean_event_bus, db_path):
    pool = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)
    pool.open_stake(ALICE, 1000, 1)
    pool.close()

    other = NetworkConfig(network_id="other", genesis_time=TEST_NETWORK.genesis_time, staking_asset="gold")
    with pytest.raises(ValidationError, match="staking asset"):
        _open_pool(bank, clock, admin_config, clean_event_bus, db_path, network=other)


# ═══════════════════════════════════════════════════════════════════
# WRITE ORDERING
# ═══════════════════════════════════════════════════════════════════

def _funded_claim(pool, clock):
    stake = pool.open_stake(ALICE, 1000, 52)
    pool.record_epoch_emission(EMITTER, 700)
    clock.advance(WEEK)
    return stake


def test_failed_store_moves_nothing_and_restart_pays_once(bank, clock, admin_config, clean_event_bus,
                                                          db_path, monkeypatch):
    pool = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)
    stake = _funded_claim(pool, clock)
    balance = bank.balance_of(SHIP, ALICE)

    def disk_full(items):
        raise sqlite3.OperationalError("database or disk is full")

    monkeypatch.setattr(pool.db, "set_many", disk_full)
    with pytest.raises(sqlite3.OperationalError):
        pool.claim_emission(ALICE, stake.stake_id)

    assert bank.balance_of(SHIP, ALICE) == balance
    assert pool.pending(stake.stake_id) == 700
    monkeypatch.undo()
    pool.close()

    restarted = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)
    assert restarted.claim_emission(ALICE, stake.stake_id) == 700
    with pytest.raises(StateError, match="Nothing to claim"):
        restarted.claim_emission(ALICE, stake.stake_id)
    assert bank.balance_of(SHIP, ALICE) == STARTING_BALANCE - 1000 + 700
    restarted.close()


def test_failed_transfer_restores_stored_state(bank, clock, admin_config, clean_event_bus, db_path, monkeypatch):
    pool = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)
    stake = _funded_claim(pool, clock)
    stored = pool.db.get_state_by_prefix("")

    def bank_down(transfers):
        raise TransferFailure("bank unavailable")

    monkeypatch.setattr(bank, "execute", bank_down)
    with pytest.raises(TransferFailure):
        pool.claim_emission(ALICE, stake.stake_id)
    with pytest.raises(TransferFailure):
        pool.open_stake(BOB, 500, 1)
    monkeypatch.undo()

    # Rows the failed operations added are gone, the rest is as before
    assert pool.db.get_state_by_prefix("") == stored
    assert pool.db.get_state("stake:2") is None
    pool.close()

    restarted = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)
    assert restarted.pool_totals().stake_count == 1
    assert restarted.pending(stake.stake_id) == 700
    assert restarted.open_stake(BOB, 500, 1).stake_id == 2
    assert restarted.claim_emission(ALICE, stake.stake_id) == 700
    restarted.close()


def test_only_touched_keys_are_written(bank, clock, admin_config, clean_event_bus, db_path, monkeypatch):
    pool = _open_pool(bank, clock, admin_config, clean_event_bus, db_path)
    stake = pool.open_stake(ALICE, 1000, 52)
    pool.open_stake(BOB, 1000, 1)
    pool.record_epoch_emission(EMITTER, 700)
    clock.advance(WEEK)

    batches = []
    write = pool.db.set_many

    def recording(items):
        batches.append(dict(items))
        write(items)

    monkeypatch.setattr(pool.db, "set_many", recording)
    pool.claim_emission(ALICE, stake.stake_id)

    assert len(batches) == 1
    assert sorted(batches[0]) == ["claim:1:1:ship", "meta", "stake:1", "totals"]
    pool.close()
