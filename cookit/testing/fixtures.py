"""Pytest fixtures for Cook'it.

Enable with ``pytest_plugins = ["cookit.testing.fixtures"]``.
"""

from __future__ import annotations

from random import Random

import pytest

from ..app import GameApp
from ..config import AccountConfig, CookitConfig


@pytest.fixture()
def memory_app() -> GameApp:
    config = CookitConfig(accounts=AccountConfig(password_iterations=1_000))
    return GameApp(config, rng=Random(1234))
