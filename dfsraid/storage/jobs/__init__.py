"""Encoding job execution, monitoring and scheduling."""

from .execution import (
    ExecutionStrategy,
    LocalExecutionStrategy,
    ThreadPoolExecutionStrategy,
    create_execution_strategy,
)
from .monitor import JobMonitor
from .scheduler import JobScheduler, SchedulerState, TraversalCursor

__all__ = [
    'ExecutionStrategy',
    'LocalExecutionStrategy',
    'ThreadPoolExecutionStrategy',
    'create_execution_strategy',
    'JobMonitor',
    'JobScheduler',
    'SchedulerState',
    'TraversalCursor',
]
