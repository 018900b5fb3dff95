"""
Execution Status Enum.

Status values for workflow execution tracking.
"""
from enum import Enum


class ExecutionStatus(str, Enum):
    """Execution status values."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING
