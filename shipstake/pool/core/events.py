"""
Pool lifecycle events.

Operations build PoolEvent values while they run against the draft state;
the pool publishes them only once the operation has been committed and its
transfers went through, so a listener never sees an event that was rolled
back.
"""
from typing import Any, Callable, Dict, Iterable, List, NamedTuple
import logging

logger = logging.getLogger(__name__)

STAKE_OPENED = "stake_opened"
STAKE_REDUCED = "stake_reduced"
STAKE_CLOSED = "stake_closed"
REWARDS_CLAIMED = "rewards_claimed"
EPOCH_RECORDED = "epoch_recorded"
REVENUE_ASSET_REGISTERED = "revenue_asset_registered"
POOL_PAUSED = "pool_paused"
POOL_UNPAUSED = "pool_unpaused"
CONFIG_UPDATED = "config_updated"
RETAINED_SWEPT = "retained_swept"

POOL_EVENTS = frozenset({
    STAKE_OPENED, STAKE_REDUCED, STAKE_CLOSED, REWARDS_CLAIMED, EPOCH_RECORDED,
    REVENUE_ASSET_REGISTERED, POOL_PAUSED, POOL_UNPAUSED, CONFIG_UPDATED, RETAINED_SWEPT,
})


class PoolEvent(NamedTuple):
    name: str
    data: Dict[str, Any]

    @classmethod
    def stake_opened(cls, stake) -> 'PoolEvent':
        return cls(STAKE_OPENED, {
            "stake_id": stake.stake_id, "owner": stake.owner, "amount": stake.principal,
            "lock_weeks": stake.lock_weeks, "multiplier": stake.multiplier,
        })

    @classmethod
    def stake_exited(cls, stake_id: int, owner: str, net_amount: int, penalty: int,
                     closed: bool, emergency: bool = False) -> 'PoolEvent':
        data = {"stake_id": stake_id, "owner": owner, "net_amount": net_amount, "penalty": penalty}
        if emergency:
            data["emergency"] = True
        return cls(STAKE_CLOSED if closed else STAKE_REDUCED, data)

    @classmethod
    def rewards_claimed(cls, owner: str, stake_ids: List[int], rewards: Dict[str, int]) -> List['PoolEvent']:
        """One event per asset paid out."""
        return [
            cls(REWARDS_CLAIMED, {"owner": owner, "stake_ids": list(stake_ids), "asset": asset, "amount": amount})
            for asset, amount in rewards.items()
        ]

    @classmethod
    def epoch_recorded(cls, snapshot) -> 'PoolEvent':
        return cls(EPOCH_RECORDED, {
            "asset": snapshot.asset, "epoch": snapshot.epoch, "amount": snapshot.amount,
            "total_weighted_stake": snapshot.total_weighted_stake,
        })

    @classmethod
    def revenue_asset_registered(cls, asset: str) -> 'PoolEvent':
        return cls(REVENUE_ASSET_REGISTERED, {"asset": asset})

    @classmethod
    def pause_changed(cls, paused: bool, by: str) -> 'PoolEvent':
        return cls(POOL_PAUSED if paused else POOL_UNPAUSED, {"by": by})

    @classmethod
    def config_updated(cls, by: str, **changes: Any) -> 'PoolEvent':
        return cls(CONFIG_UPDATED, {"by": by, **changes})

    @classmethod
    def retained_swept(cls, by: str, dest: str, amount: int, remaining: int) -> 'PoolEvent':
        return cls(RETAINED_SWEPT, {"by": by, "dest": dest, "amount": amount, "remaining": remaining})


class EventBus:
    """
    Synchronous pub/sub for pool events.

    Listeners run in the publishing thread, after the operation released the
    pool lock. A failing listener is logged and never aborts the operation or
    the listeners after it.
    """

    def __init__(self):
        self.listeners: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable) -> None:
        if event_type not in POOL_EVENTS:
            logger.debug(f"Subscribing to non-pool event: {event_type}")
        self.listeners.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed to event: {event_type}")

    def on(self, event_type: str) -> Callable[[Callable], Callable]:
        """Decorator form of subscribe(); returns the listener unchanged."""
        def register(callback: Callable) -> Callable:
            self.subscribe(event_type, callback)
            return callback
        return register

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        if event_type in self.listeners:
            try:
                self.listeners[event_type].remove(callback)
                logger.debug(f"Unsubscribed from event: {event_type}")
            except ValueError:
                logger.warning(f"Callback not found for event: {event_type}")

    def emit(self, event_type: str, **data: Any) -> None:
        listeners = self.listeners.get(event_type, [])
        if not listeners:
            logger.debug(f"No listeners for event: {event_type}")
            return

        logger.debug(f"Emitting event: {event_type} to {len(listeners)} listener(s)")
        for callback in list(listeners):
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {event_type}: {e}", exc_info=True)

    def publish(self, events: Iterable[PoolEvent]) -> int:
        """Emits committed pool events in order; returns how many were published."""
        count = 0
        for event in events:
            self.emit(event.name, **event.data)
            count += 1
        return count

    def clear(self, event_type: str = None) -> None:
        """Drops the listeners of one event type, or all of them."""
        if event_type:
            self.listeners.pop(event_type, None)
            logger.debug(f"Cleared listeners for event: {event_type}")
        else:
            self.listeners.clear()
            logger.debug("Cleared all event listeners")


# Global event bus instance
event_bus = EventBus()
