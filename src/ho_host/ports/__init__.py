"""Port allocation for dynamic-project backends."""

from .allocator import PortAllocator, PortLease

__all__ = ["PortAllocator", "PortLease"]
