"""
Purpose: Package entry + stable exports.

Orders domain package.

Public API:
- Domain models: Order, OrderSnapshot, Stop, OrderStatus
- OrderQueue (lifecycle + the order <-> rider commit path)

"""
from .models import Order, OrderSnapshot, Stop, OrderStatus
from .queue import OrderQueue, QueueStats
from .state_machine import OrderStateException

__all__ = ["Order",
           "OrderSnapshot",
             "Stop",
               "OrderStatus",
               "OrderQueue",
               "QueueStats",
               "OrderStateException",
               ]
