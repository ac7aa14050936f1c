"""
Batch scheduling: decides when settled pending changes are pushed.
"""

from .scheduler import BatchScheduler, FlushTrigger, TickResult

__all__ = ["BatchScheduler", "FlushTrigger", "TickResult"]
