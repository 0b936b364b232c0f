from datetime import datetime

from .models import Order, OrderStatus


class OrderStateException(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


def transition_order_to_unassigned(order: Order) -> Order:
    """
    CREATED -> UNASSIGNED, on entry into the queue.
    """
    if order.status not in (OrderStatus.CREATED, OrderStatus.UNASSIGNED):
        raise OrderStateException(f"Cannot enqueue order {order.id} in state {order.status.value}")

    order.status = OrderStatus.UNASSIGNED
    order.version += 1
    return order


def ensure_assignable(order: Order) -> None:
    if order.status != OrderStatus.UNASSIGNED:
        raise OrderStateException(f"Order {order.id} is not UNASSIGNED. Current: {order.status.value}")


def transition_order_to_assigned(order: Order, rider_id: str, now: datetime) -> Order:
    """
    UNASSIGNED -> ASSIGNED. Must be preceded by ensure_assignable under the same lock.
    """
    order.status = OrderStatus.ASSIGNED
    order.rider_id = rider_id
    order.assigned_at = now
    order.version += 1
    return order


def transition_order_to_picked_up(order: Order, now: datetime) -> Order:
    if order.status != OrderStatus.ASSIGNED:
        raise OrderStateException(f"Order {order.id} cannot be picked up from {order.status.value}")

    order.status = OrderStatus.PICKED_UP
    order.picked_up_at = now
    order.version += 1
    return order


def transition_order_to_terminal(order: Order, status: OrderStatus, now: datetime) -> Order:
    """
    PICKED_UP -> DELIVERED, or UNASSIGNED/ASSIGNED/PICKED_UP -> CANCELLED.
    The caller is responsible for freeing the rider in the same critical section.
    """
    if status == OrderStatus.DELIVERED:
        if order.status != OrderStatus.PICKED_UP:
            raise OrderStateException(f"Order {order.id} cannot be delivered from {order.status.value}")
    elif status == OrderStatus.CANCELLED:
        if order.status not in (OrderStatus.UNASSIGNED, OrderStatus.ASSIGNED, OrderStatus.PICKED_UP):
            raise OrderStateException(f"Order {order.id} cannot be cancelled from {order.status.value}")
    else:
        raise ValueError(f"{status.value} is not a terminal order status")

    order.status = status
    order.closed_at = now
    order.version += 1
    return order


def release_order_to_unassigned(order: Order) -> Order:
    """
    Rider-failure fallback: the rider holding this order is gone, so the
    order goes back to the queue and competes again on the next tick.
    """
    if not order.status.holds_rider:
        raise OrderStateException(f"Order {order.id} holds no rider (state {order.status.value})")

    order.status = OrderStatus.UNASSIGNED
    order.rider_id = None
    order.assigned_at = None
    order.picked_up_at = None
    order.version += 1
    return order
