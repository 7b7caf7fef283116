"""Distributed lock over the shared key-value store."""

from .distributed_lock import DistributedLock

__all__ = ["DistributedLock"]
