"""
Riders domain package.

Public API:
- Rider, RiderSnapshot, RiderStatus
- RiderRegistry
"""
from .models import Rider, RiderSnapshot, RiderStatus
from .registry import RiderRegistry
from .state_machine import RiderStateException

__all__ = [
    "Rider",
    "RiderSnapshot",
    "RiderStatus",
    "RiderRegistry",
    "RiderStateException",
]
