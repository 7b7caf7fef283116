"""
Core Interfaces Module

Abstract protocols for the infrastructure the worker engine depends on,
enabling dependency injection and in-memory fakes in tests.

Components:
-----------
- **cache.py**: KeyValueStore protocol (cache, lock and queue backing store)
- **datastore.py**: CentralDatastore protocol (batch-upsert/read contract)

Interfaces follow the Protocol pattern (PEP 544) for structural subtyping:
- Runtime type checking with @runtime_checkable
- No inheritance required

Author: System Architect
Date: 2025-12-08
"""

from src.core.interfaces.cache import KeyValueStore
from src.core.interfaces.datastore import CentralDatastore, UpsertResult

__all__ = [
    "KeyValueStore",
    "CentralDatastore",
    "UpsertResult",
]
