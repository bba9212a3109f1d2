"""
Reassignment coordinator - re-matching rides after their driver drops out.

This module handles:
    - Flagging declined / driver-cancelled rides for reassignment
    - Re-running the driver search with the ride's exclusion history
    - Re-entering a ride into pending with a new driver
    - Expiring rides left pending too long
"""

from .coordinator import (
    handle_status_change,
    mark_needs_reassignment,
    reassign_ride,
    retry_matching,
    sweep_stranded_rides,
)
from .pending_timeout import expire_pending_ride, expire_stale_pending_rides

__all__ = [
    "handle_status_change",
    "mark_needs_reassignment",
    "reassign_ride",
    "retry_matching",
    "sweep_stranded_rides",
    "expire_pending_ride",
    "expire_stale_pending_rides",
]
