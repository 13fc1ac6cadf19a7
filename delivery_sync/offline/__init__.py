# ==============================================
# TOPIC 3: OFFLINE CHANGES
# ==============================================
#
# Status changes made while the remote store is unreachable are
# parked here and replayed, in order, once connectivity returns.
#
# Modules:
# --------
# - pending_change.py → PendingChange / UpdateType
# - change_queue.py   → OfflineChangeQueue (durable FIFO + drain)
#
# ==============================================

from .pending_change import PendingChange, UpdateType
from .change_queue import DrainResult, OfflineChangeQueue

__all__ = ["PendingChange", "UpdateType", "DrainResult", "OfflineChangeQueue"]
