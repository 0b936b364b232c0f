#Expose the high-level pipeline pieces:
#Ranking (who is best for one pickup)
#Assignment engine (the per-tick matcher)
#Snapshot builder (dashboard read model)
#FleetDispatchService (the "one object" collaborators talk to)

from .policy import DispatchPolicy, default_dispatch_policy, policy_from_env
from .scoring import rank_candidates
from .engine import AssignmentEngine, AssignmentRecord, TickResult
from .snapshot import FleetSnapshot, FleetStats, SnapshotBuilder
from .events import InvalidEventError
from .service import FleetDispatchService, RiderDetail, UnknownEntityError
from .scheduler import TickScheduler

__all__ = [
    "DispatchPolicy",
    "default_dispatch_policy",
    "policy_from_env",
    "rank_candidates",
    "AssignmentEngine",
    "AssignmentRecord",
    "TickResult",
    "FleetSnapshot",
    "FleetStats",
    "SnapshotBuilder",
    "InvalidEventError",
    "FleetDispatchService",
    "RiderDetail",
    "UnknownEntityError",
    "TickScheduler",
]
