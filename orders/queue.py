"""
Purpose: Owns every order in flight and the order <-> rider commit path.
What it does:
- Keeps all orders by id, plus the UNASSIGNED index the engine reads each tick.

Provides operations:
   - enqueue(order)
   - mark_assigned(order_id, rider_id)      UNASSIGNED -> ASSIGNED, rider ONLINE -> BUSY
   - mark_picked_up(order_id)               ASSIGNED -> PICKED_UP
   - mark_terminal(order_id, status)        -> DELIVERED / CANCELLED, rider BUSY -> ONLINE
   - release_rider(rider_id, to_status)     rider BUSY -> OFFLINE, order -> UNASSIGNED
   - list_unassigned()                      oldest first

Rule: every operation touching an order AND a rider happens here, holding
the order lock first and the rider lock second. Nothing else may take them
in the opposite order.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from riders.models import Rider, RiderStatus, as_utc
from riders.registry import RiderRegistry
from riders.state_machine import RiderStateException, claim_rider, ensure_claimable, release_rider

from .models import Order, OrderSnapshot, OrderStatus
from .state_machine import (
    OrderStateException,
    ensure_assignable,
    release_order_to_unassigned,
    transition_order_to_assigned,
    transition_order_to_picked_up,
    transition_order_to_terminal,
    transition_order_to_unassigned,
)

logger = logging.getLogger(__name__)

# release_rider re-reads the rider's order after locking; bounded so a
# pathological churn cannot spin forever
MAX_RELEASE_ATTEMPTS = 5


@dataclass
class QueueStats:
    unassigned_count: int
    assigned_count: int
    picked_up_count: int
    delivered_count: int
    cancelled_count: int


@dataclass
class OrderQueue:
    """
    In-memory order lifecycle manager:

    UNASSIGNED -> ASSIGNED -> PICKED_UP -> DELIVERED
         \\____________\\___________\\-> CANCELLED
    """
    riders: RiderRegistry

    _orders: Dict[str, Order] = field(default_factory=dict)
    # order id -> (created_at, enqueue sequence) for FIFO ordering
    _unassigned: Dict[str, tuple] = field(default_factory=dict)
    _sequence: Dict[str, int] = field(default_factory=dict)
    _counter: itertools.count = field(default_factory=itertools.count)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def __post_init__(self):
        self.riders.bind_order_queue(self)

    # --- Public API ---

    def enqueue(self, order: Order) -> bool:
        """
        Add a new order as UNASSIGNED. Returns False for a duplicate id.
        """
        if order.status not in (OrderStatus.CREATED, OrderStatus.UNASSIGNED) or order.rider_id is not None:
            raise ValueError(f"Order {order.id} must be enqueued fresh, got {order.status.value}")
        order.created_at = as_utc(order.created_at)

        with self._lock:
            if order.id in self._orders:
                #idempotency : dont double insert
                logger.debug(f"Order {order.id} already queued; duplicate creation event ignored")
                return False
            self._orders[order.id] = order

        with order.lock:
            transition_order_to_unassigned(order)
            with self._lock:
                self._sequence[order.id] = next(self._counter)
                self._unassigned[order.id] = (order.created_at, self._sequence[order.id])

        logger.info(f"Order {order.id} queued (pickup {order.pickup.coordinates})")
        return True

    def mark_assigned(
        self,
        order_id: str,
        rider_id: str,
        *,
        expected_rider_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Atomic commit of an assignment: the order gets the rider and the rider
        gets the order, or nothing changes at all.

        Returns False (order stays UNASSIGNED) when the order is no longer
        UNASSIGNED, or the rider is no longer ONLINE and idle, or the rider's
        version moved past `expected_rider_version`.
        """
        now = as_utc(now)

        order = self._record(order_id)
        if order is None:
            logger.warning(f"Assignment of unknown order {order_id} dropped")
            return False

        rider = self.riders._record(rider_id)
        if rider is None:
            logger.warning(f"Assignment of order {order_id} to unknown rider {rider_id} dropped")
            return False

        with order.lock, rider.lock:
            try:
                ensure_assignable(order)
                ensure_claimable(rider, expected_rider_version)
            except (OrderStateException, RiderStateException) as e:
                logger.debug(f"Assignment {order_id} -> {rider_id} aborted: {e}")
                return False

            transition_order_to_assigned(order, rider_id, now)
            claim_rider(rider, order_id)
            with self._lock:
                self._unassigned.pop(order_id, None)

        logger.info(f"Order {order_id} assigned to rider {rider_id}")
        return True

    def mark_picked_up(self, order_id: str, now: Optional[datetime] = None) -> bool:
        now = as_utc(now)
        order = self._record(order_id)
        if order is None:
            logger.warning(f"Pickup confirmation for unknown order {order_id} dropped")
            return False

        with order.lock:
            try:
                transition_order_to_picked_up(order, now)
            except OrderStateException as e:
                logger.warning(f"Rejected pickup confirmation: {e}")
                return False

        logger.info(f"Order {order_id} picked up by rider {order.rider_id}")
        return True

    def mark_terminal(self, order_id: str, status: str | OrderStatus, now: Optional[datetime] = None) -> bool:
        """
        Close an order as DELIVERED or CANCELLED. Any rider holding it is
        freed (BUSY -> ONLINE) inside the same critical section.
        """
        status = OrderStatus.parse(status)
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal order status")
        now = as_utc(now)

        order = self._record(order_id)
        if order is None:
            logger.warning(f"{status.value} event for unknown order {order_id} dropped")
            return False

        with order.lock:
            rider = self.riders._record(order.rider_id) if order.rider_id else None
            if rider is None:
                return self._close(order, status, now)
            with rider.lock:
                if not self._close(order, status, now, rider=rider):
                    return False

        return True

    def release_rider(
        self,
        rider_id: str,
        *,
        to_status: RiderStatus = RiderStatus.OFFLINE,
        now: Optional[datetime] = None,
        only_if_stale_before: Optional[datetime] = None,
    ) -> Optional[str]:
        """
        Rider-failure release: free the rider into `to_status` and send its
        order (if not already terminal) back to UNASSIGNED, atomically.

        Returns the released order id, or None if the rider held no order
        (or, with `only_if_stale_before`, reported in after the cutoff).
        """
        now = as_utc(now)
        if only_if_stale_before is not None:
            only_if_stale_before = as_utc(only_if_stale_before)
        rider = self.riders._record(rider_id)
        if rider is None:
            return None

        for _ in range(MAX_RELEASE_ATTEMPTS):
            # optimistic read; confirmed once both locks are held
            order_id = rider.current_order_id
            if order_id is None:
                return None

            order = self._record(order_id)
            if order is None:
                logger.error(f"Rider {rider_id} references unknown order {order_id}")
                return None

            with order.lock, rider.lock:
                if rider.current_order_id != order_id:
                    continue
                if only_if_stale_before is not None and rider.last_update is not None \
                        and rider.last_update >= only_if_stale_before:
                    return None

                if order.status.holds_rider and order.rider_id == rider_id:
                    release_order_to_unassigned(order)
                    with self._lock:
                        self._unassigned[order.id] = (order.created_at, self._sequence[order.id])
                release_rider(rider, now, to_status)
                return order_id

        logger.warning(f"Gave up releasing rider {rider_id} after {MAX_RELEASE_ATTEMPTS} attempts")
        return None

    # --- Queries ---

    def get(self, order_id: str) -> Optional[OrderSnapshot]:
        order = self._record(order_id)
        if order is None:
            return None
        with order.lock:
            return order.snapshot()

    def list_unassigned(self, limit: Optional[int] = None) -> List[OrderSnapshot]:
        """
        FIFO by creation time (ties broken by enqueue order).
        """
        with self._lock:
            ordered_ids = sorted(self._unassigned, key=self._unassigned.__getitem__)
            records = [self._orders[order_id] for order_id in ordered_ids]

        snapshots: List[OrderSnapshot] = []
        for order in records:
            if limit is not None and len(snapshots) >= limit:
                break
            with order.lock:
                # may have been claimed between the index read and here
                if order.status == OrderStatus.UNASSIGNED:
                    snapshots.append(order.snapshot())
        return snapshots

    def stats(self) -> QueueStats:
        counts = {status: 0 for status in OrderStatus}
        for order in self._records():
            counts[order.status] += 1
        return QueueStats(
            unassigned_count=counts[OrderStatus.UNASSIGNED],
            assigned_count=counts[OrderStatus.ASSIGNED],
            picked_up_count=counts[OrderStatus.PICKED_UP],
            delivered_count=counts[OrderStatus.DELIVERED],
            cancelled_count=counts[OrderStatus.CANCELLED],
        )

    def prune_terminal(self, before: datetime) -> int:
        """
        Forget DELIVERED/CANCELLED orders closed before `before`.
        Durable history is the order store's job, not the dispatch core's.
        """
        before = as_utc(before)
        with self._lock:
            doomed = [
                order_id for order_id, order in self._orders.items()
                if order.status.is_terminal and order.closed_at is not None and order.closed_at < before
            ]
            for order_id in doomed:
                del self._orders[order_id]
                self._sequence.pop(order_id, None)
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    # --- Transition methods / helpers ---

    def _close(self, order: Order, status: OrderStatus, now: datetime, rider: Optional[Rider] = None) -> bool:
        """Caller holds order.lock (and rider.lock when a rider is given)."""
        try:
            transition_order_to_terminal(order, status, now)
        except OrderStateException as e:
            logger.warning(f"Rejected {status.value} event: {e}")
            return False

        with self._lock:
            self._unassigned.pop(order.id, None)

        if rider is not None and rider.current_order_id == order.id:
            release_rider(rider, now, RiderStatus.ONLINE)
            if status == OrderStatus.DELIVERED:
                rider.total_deliveries += 1
            logger.info(f"Order {order.id} {status.value}; rider {rider.id} back ONLINE")
        else:
            logger.info(f"Order {order.id} {status.value}")
        return True

    def _record(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def _records(self) -> List[Order]:
        with self._lock:
            return list(self._orders.values())
