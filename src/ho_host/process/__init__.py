"""Backend process supervision.

- ProcessSupervisor: spawns, watches and terminates backend processes
- ProcessRegistry: thread-safe key -> handle table owned by the supervisor
- ReadinessDetector: pluggable "is it up yet?" policy (stdout markers or HTTP)
"""

from .models import ProcessHandle, ProcessInfo, ProcessKey, ProcessState
from .readiness import HttpReadinessDetector, OutputReadinessDetector, Readiness, ReadinessDetector
from .registry import ProcessRegistry
from .supervisor import ProcessSupervisor

__all__ = [
    "ProcessHandle",
    "ProcessInfo",
    "ProcessKey",
    "ProcessState",
    "HttpReadinessDetector",
    "OutputReadinessDetector",
    "Readiness",
    "ReadinessDetector",
    "ProcessRegistry",
    "ProcessSupervisor",
]
