"""Testing utilities for Cook'it."""

from .factory import AccountFactory, ItemFactory, RarityTableFactory
from .fixtures import memory_app
from .test_client import TestClient

__all__ = [
    "AccountFactory",
    "ItemFactory",
    "RarityTableFactory",
    "memory_app",
    "TestClient",
]
