"""
Integration tests.

These run against a real Redis at ``REDIS_URL`` and are skipped when it is not
reachable:
- Store primitives the lock and queues rely on (SET NX EX, compare-and-delete)
- Distributed lock ownership
- Job queue ordering over real sorted sets
"""
