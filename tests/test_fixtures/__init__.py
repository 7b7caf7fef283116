"""
Test Fixtures Package

In-memory fakes for the store, datastore, alert channels and POS client shared by all tests.
"""

from .channel_factory import RecordingChannel
from .datastore_factory import RecordingDatastore
from .pos_factory import BrokenPosClient, ScriptedPosClient
from .store_factory import FakeClock, InMemoryStore

__all__ = [
    "FakeClock",
    "InMemoryStore",
    "RecordingDatastore",
    "RecordingChannel",
    "ScriptedPosClient",
    "BrokenPosClient",
]
