"""Backend port allocation."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..errors import PortExhausted
from ..utils.logging import audit, get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PortLease:
    port: int
    owner: str
    project: str


class PortAllocator:
    """Hands out unique ports from an inclusive range.

    The lowest free port always wins, which keeps allocation deterministic
    and favours reuse of released ports. All reads and writes of the lease
    table happen under one lock.
    """

    def __init__(self, min_port: int = 3001, max_port: int = 4000) -> None:
        if min_port > max_port:
            raise ValueError(f"Invalid port range {min_port}-{max_port}")
        self.min_port = min_port
        self.max_port = max_port
        self._leases: Dict[int, PortLease] = {}
        self._lock = threading.Lock()

    @property
    def range_label(self) -> str:
        return f"{self.min_port}-{self.max_port}"

    def allocate(self, owner: str, project: str) -> int:
        with self._lock:
            for port in range(self.min_port, self.max_port + 1):
                if port not in self._leases:
                    self._leases[port] = PortLease(port=port, owner=owner, project=project)
                    break
            else:
                port = None

        if port is None:
            audit(logger, owner, "PORT_ALLOCATION_FAILED", f"No available ports for project {project}")
            raise PortExhausted(self.min_port, self.max_port)

        audit(logger, owner, "PORT_ALLOCATED", f"Port {port} for project {project}")
        return port

    def reserve(self, port: int, owner: str, project: str) -> bool:
        """Claim a specific port, e.g. one recorded for an existing project.

        Returns False when the port is outside the range or already leased
        to a different project.
        """
        if not self.min_port <= port <= self.max_port:
            return False
        with self._lock:
            lease = self._leases.get(port)
            if lease is not None:
                return lease.owner == owner and lease.project == project
            self._leases[port] = PortLease(port=port, owner=owner, project=project)
        audit(logger, owner, "PORT_RESERVED", f"Port {port} for project {project}")
        return True

    def release(self, port: Optional[int], owner: str, project: str) -> None:
        """Return a port to the pool. Releasing an unheld port does nothing."""
        if port is None:
            return
        with self._lock:
            lease = self._leases.pop(port, None)
        if lease is not None:
            audit(logger, owner, "PORT_RELEASED", f"Port {port} for project {project}")

    def is_in_use(self, port: int) -> bool:
        with self._lock:
            return port in self._leases

    def lease_for(self, port: int) -> Optional[PortLease]:
        with self._lock:
            return self._leases.get(port)

    def get_used(self) -> List[int]:
        with self._lock:
            return sorted(self._leases)
