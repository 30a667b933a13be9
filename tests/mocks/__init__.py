"""
Mock implementations for testing.

Provides fakes for external dependencies:
- InMemoryRemoteStore: GitHub Contents API / backend file store
"""

from tests.mocks.memory_remote_store import InMemoryRemoteStore

__all__ = [
    "InMemoryRemoteStore",
]
